"""API tests for /listings: upload pipeline, browsing, ownership checks and events."""

import unittest
from unittest import mock

from starlette.requests import Request

from app.services import listings as listing_service
from tests.support import JPEG_BYTES, ApiTestCase, loop_running

LISTINGS_URL = "/api/v1/listings"


class TestUploadListing(ApiTestCase):
    """POST /listings validates, stores the image, persists with defaults and owner from session."""

    def test_sunset_upload_creates_available_listing_owned_by_caller(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.upload(user, title="Sunset", price="120", content=b"\xff\xd8" + b"\x00" * 500_000)
        self.assertEqual(resp.status_code, 201, resp.text)
        body = resp.json()
        self.assertEqual(body["title"], "Sunset")
        self.assertEqual(body["price"], 120.0)
        self.assertEqual(body["owner_id"], user.id)
        self.assertEqual(body["owner"]["email"], "u@example.com")
        self.assertEqual(body["status"], "available")
        self.assertEqual(body["description"], "No description available.")
        self.assertEqual(body["dimensions"], "Not specified")
        self.assertEqual(body["material"], "Not specified")
        self.assertTrue(body["image_url"].startswith("/uploads/"))
        self.assertTrue(body["image_url"].endswith(".jpg"))
        self.assertEqual(len(self.stored_files()), 1)

    def test_client_supplied_owner_is_ignored(self) -> None:
        owner = self.create_user("owner@example.com")
        other = self.create_user("other@example.com")
        resp = self.upload(owner, owner=str(other.id))
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(resp.json()["owner_id"], owner.id)

    def test_optional_fields_are_kept_and_title_trimmed(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.upload(
            user,
            title="  Harbour at dusk ",
            description="Oil on canvas",
            dimensions="40x60 cm",
            material="Oil",
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        body = resp.json()
        self.assertEqual(body["title"], "Harbour at dusk")
        self.assertEqual(body["description"], "Oil on canvas")
        self.assertEqual(body["dimensions"], "40x60 cm")
        self.assertEqual(body["material"], "Oil")

    def test_duplicate_title_rejected_and_store_unchanged(self) -> None:
        first = self.create_user("a@example.com")
        second = self.create_user("b@example.com")
        self.assertEqual(self.upload(first, title="Sunset").status_code, 201)
        resp = self.upload(second, title="Sunset")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "AlreadyExists")
        self.assertEqual(self.listing_count(), 1)
        self.assertEqual(len(self.stored_files()), 1)

    def test_unsupported_media_type_rejected_before_any_write(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.upload(user, filename="a.gif", content=b"GIF89a....", content_type="image/gif")
        self.assertEqual(resp.status_code, 415)
        self.assertEqual(resp.json()["code"], "UnsupportedMediaType")
        self.assertEqual(self.listing_count(), 0)
        self.assertEqual(self.stored_files(), [])

    def test_oversized_image_rejected_before_any_write(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.upload(user, content=b"\x00" * (2 * 1024 * 1024 + 1))
        self.assertEqual(resp.status_code, 413)
        self.assertEqual(resp.json()["code"], "PayloadTooLarge")
        self.assertEqual(self.listing_count(), 0)
        self.assertEqual(self.stored_files(), [])

    def test_png_accepted(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.upload(user, filename="a.png", content=b"\x89PNG" + b"\x00" * 10, content_type="image/png")
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertTrue(resp.json()["image_url"].endswith(".png"))

    def test_missing_title_names_the_field(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.upload(user, title="   ")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "InvalidArgument")
        self.assertIn("title", resp.json()["detail"])
        self.assertEqual(self.listing_count(), 0)

    def test_invalid_price_rejected(self) -> None:
        user = self.create_user("u@example.com")
        for price in ("0", "-3", "abc", "inf"):
            resp = self.upload(user, title=f"Price {price}", price=price)
            self.assertEqual(resp.status_code, 400, price)
            self.assertIn("price", resp.json()["detail"])
        self.assertEqual(self.listing_count(), 0)

    def test_non_image_file_part_rejected(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.client.post(
            LISTINGS_URL,
            data={"title": "No image", "price": "10"},
            files={"other": ("notes.txt", b"hello", "text/plain")},
            headers=self.auth_headers(user),
        )
        self.assertEqual(resp.status_code, 415)

    def test_json_body_rejected_as_unsupported(self) -> None:
        user = self.create_user("u@example.com")
        resp = self.client.post(
            LISTINGS_URL,
            json={"title": "Sunset", "price": 120},
            headers=self.auth_headers(user),
        )
        self.assertEqual(resp.status_code, 415)

    def test_unauthenticated_upload_rejected(self) -> None:
        resp = self.upload(None)
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.headers.get("www-authenticate"), "Bearer")
        self.assertEqual(self.listing_count(), 0)

    def test_upload_succeeds_when_event_bus_is_closed(self) -> None:
        user = self.create_user("u@example.com")
        self.bus.close()
        resp = self.upload(user)
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(self.listing_count(), 1)

    def test_declared_oversized_body_rejected_before_form_parsing(self) -> None:
        user = self.create_user("u@example.com")
        with mock.patch.object(Request, "form") as form:
            resp = self.upload(user, content=b"\x00" * (2 * 1024 * 1024 + 128 * 1024))
        self.assertEqual(resp.status_code, 413)
        self.assertEqual(resp.json()["code"], "PayloadTooLarge")
        form.assert_not_called()
        self.assertEqual(self.listing_count(), 0)
        self.assertEqual(self.stored_files(), [])

    def test_storage_and_insert_run_off_the_event_loop(self) -> None:
        user = self.create_user("u@example.com")
        on_loop: list[bool] = []
        real = listing_service.upload_listing

        def recording(*args, **kwargs):
            on_loop.append(loop_running())
            return real(*args, **kwargs)

        with mock.patch.object(listing_service, "upload_listing", recording):
            resp = self.upload(user)
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(on_loop, [False])


class TestReadListings(ApiTestCase):
    """GET /listings and GET /listings/{id}."""

    def test_round_trip_by_id(self) -> None:
        user = self.create_user("u@example.com")
        created = self.upload(user, title="Sunset", price="120").json()
        resp = self.client.get(f"{LISTINGS_URL}/{created['id']}")
        self.assertEqual(resp.status_code, 200)
        fetched = resp.json()
        for key in ("image_url", "title", "price", "description", "owner_id", "status"):
            self.assertEqual(fetched[key], created[key])
        self.assertEqual(fetched["description"], "No description available.")

    def test_unknown_id_is_not_found(self) -> None:
        resp = self.client.get(f"{LISTINGS_URL}/999")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "NotFound")

    def test_list_is_newest_first(self) -> None:
        user = self.create_user("u@example.com")
        self.upload(user, title="First")
        self.upload(user, title="Second")
        self.upload(user, title="Third")
        titles = [item["title"] for item in self.client.get(LISTINGS_URL).json()]
        self.assertEqual(titles, ["Third", "Second", "First"])

    def test_list_filters_by_status(self) -> None:
        user = self.create_user("u@example.com")
        sold_id = self.upload(user, title="Sold one").json()["id"]
        self.upload(user, title="Still here")
        self.client.patch(
            f"{LISTINGS_URL}/{sold_id}",
            json={"status": "sold"},
            headers=self.auth_headers(user),
        )
        resp = self.client.get(LISTINGS_URL, params={"status": "available"})
        self.assertEqual([item["title"] for item in resp.json()], ["Still here"])


class TestDeleteListing(ApiTestCase):
    """DELETE /listings/{id}: NotFound before Forbidden; owner or admin only."""

    def setUp(self) -> None:
        super().setUp()
        self.owner = self.create_user("owner@example.com")
        self.stranger = self.create_user("stranger@example.com")
        self.admin = self.create_user("admin@example.com", role="admin")
        self.listing_id = self.upload(self.owner, title="Sunset").json()["id"]

    def test_stranger_is_forbidden_and_store_unchanged(self) -> None:
        resp = self.client.delete(
            f"{LISTINGS_URL}/{self.listing_id}", headers=self.auth_headers(self.stranger)
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["code"], "Forbidden")
        self.assertEqual(self.listing_count(), 1)
        self.assertEqual(len(self.stored_files()), 1)

    def test_owner_deletes_exactly_one_and_image_removed(self) -> None:
        self.upload(self.owner, title="Keep me")
        resp = self.client.delete(
            f"{LISTINGS_URL}/{self.listing_id}", headers=self.auth_headers(self.owner)
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["id"], self.listing_id)
        self.assertEqual(self.listing_count(), 1)
        self.assertEqual(len(self.stored_files()), 1)
        self.assertEqual(self.client.get(f"{LISTINGS_URL}/{self.listing_id}").status_code, 404)

    def test_admin_can_delete_any_listing(self) -> None:
        resp = self.client.delete(
            f"{LISTINGS_URL}/{self.listing_id}", headers=self.auth_headers(self.admin)
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.listing_count(), 0)

    def test_missing_listing_is_not_found_even_for_stranger(self) -> None:
        resp = self.client.delete(f"{LISTINGS_URL}/999", headers=self.auth_headers(self.stranger))
        self.assertEqual(resp.status_code, 404)

    def test_unauthenticated_delete_rejected(self) -> None:
        resp = self.client.delete(f"{LISTINGS_URL}/{self.listing_id}")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(self.listing_count(), 1)


class TestUpdateListing(ApiTestCase):
    """PATCH /listings/{id}."""

    def setUp(self) -> None:
        super().setUp()
        self.owner = self.create_user("owner@example.com")
        self.stranger = self.create_user("stranger@example.com")
        self.listing_id = self.upload(self.owner, title="Sunset").json()["id"]
        self.upload(self.owner, title="Sunrise")

    def test_owner_marks_sold(self) -> None:
        resp = self.client.patch(
            f"{LISTINGS_URL}/{self.listing_id}",
            json={"status": "sold", "price": 150},
            headers=self.auth_headers(self.owner),
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["status"], "sold")
        self.assertEqual(resp.json()["price"], 150.0)

    def test_stranger_is_forbidden(self) -> None:
        resp = self.client.patch(
            f"{LISTINGS_URL}/{self.listing_id}",
            json={"status": "sold"},
            headers=self.auth_headers(self.stranger),
        )
        self.assertEqual(resp.status_code, 403)

    def test_rename_to_taken_title_rejected(self) -> None:
        resp = self.client.patch(
            f"{LISTINGS_URL}/{self.listing_id}",
            json={"title": "Sunrise"},
            headers=self.auth_headers(self.owner),
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "AlreadyExists")

    def test_unknown_status_rejected(self) -> None:
        resp = self.client.patch(
            f"{LISTINGS_URL}/{self.listing_id}",
            json={"status": "reserved"},
            headers=self.auth_headers(self.owner),
        )
        self.assertEqual(resp.status_code, 422)

    def test_infinite_price_rejected_and_price_unchanged(self) -> None:
        for price in ("inf", "-inf", "nan"):
            resp = self.client.patch(
                f"{LISTINGS_URL}/{self.listing_id}",
                json={"price": price},
                headers=self.auth_headers(self.owner),
            )
            self.assertEqual(resp.status_code, 422, price)
        stored = self.client.get(f"{LISTINGS_URL}/{self.listing_id}").json()
        self.assertEqual(stored["price"], 120.0)


class TestListingEventStream(ApiTestCase):
    """WebSocket subscribers receive listing.created after a successful upload."""

    def test_connected_subscriber_receives_new_listing(self) -> None:
        user = self.create_user("u@example.com")
        with self.client.websocket_connect("/api/v1/events/listings") as ws:
            resp = self.upload(user, title="Live one", content=JPEG_BYTES)
            self.assertEqual(resp.status_code, 201, resp.text)
            event = ws.receive_json()
        self.assertEqual(event["type"], "listing.created")
        self.assertEqual(event["data"]["title"], "Live one")
        self.assertEqual(event["data"]["id"], resp.json()["id"])
        self.assertEqual(event["data"]["owner_id"], user.id)

    def test_rejected_upload_publishes_nothing(self) -> None:
        user = self.create_user("u@example.com")
        self.upload(user, title="Sunset")
        with self.client.websocket_connect("/api/v1/events/listings") as ws:
            self.assertEqual(self.upload(user, title="Sunset").status_code, 400)
            self.assertEqual(self.upload(user, title="Next").status_code, 201)
            event = ws.receive_json()
        self.assertEqual(event["data"]["title"], "Next")


if __name__ == "__main__":
    unittest.main()
