"""Shared wiring for API tests: in-memory SQLite, temp upload dir, private event bus."""

import asyncio
import tempfile
import unittest
from pathlib import Path

import bcrypt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import get_db
from app.core.exceptions import DeliveryFailure
from app.core.security import create_access_token
from app.main import app
from app.models import Base, Listing, User
from app.services.blob_store import LocalBlobStore, get_blob_store
from app.services.event_bus import EventBus, get_event_bus
from app.services.otp_delivery import get_delivery_channel

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 1024


class RecordingChannel:
    """Delivery channel that keeps sent codes in memory (or fails on demand)."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send(self, destination: str, code: str) -> None:
        if self.fail:
            raise DeliveryFailure("Gateway down")
        self.sent.append((destination, code))


def make_session_factory() -> tuple[object, sessionmaker]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine, autoflush=False, autocommit=False)


def add_user(
    db: Session,
    email: str,
    role: str = "user",
    password: str = "secret123",
    username: str | None = None,
    mobile: str = "9876543210",
) -> User:
    """Insert an account directly (low bcrypt cost to keep tests fast)."""
    user = User(
        username=username or email.split("@")[0],
        email=email.lower(),
        mobile=mobile,
        password_hash=bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


class ApiTestCase(unittest.TestCase):
    """Base class: overrides DB, blob store, event bus and code delivery on the app."""

    def setUp(self) -> None:
        self.engine, self.SessionLocal = make_session_factory()
        self._upload_dir = tempfile.TemporaryDirectory()
        self.upload_dir = Path(self._upload_dir.name)
        self.blob_store = LocalBlobStore(self.upload_dir, "/uploads")
        self.bus = EventBus(max_pending=10)
        self.channel = RecordingChannel()

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_blob_store] = lambda: self.blob_store
        app.dependency_overrides[get_event_bus] = lambda: self.bus
        app.dependency_overrides[get_delivery_channel] = lambda: self.channel
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self._upload_dir.cleanup()
        self.engine.dispose()

    def create_user(self, email: str, role: str = "user", password: str = "secret123") -> User:
        db = self.SessionLocal()
        try:
            user = add_user(db, email, role=role, password=password)
            db.expunge(user)
            return user
        finally:
            db.close()

    def auth_headers(self, user: User) -> dict[str, str]:
        token = create_access_token(sub=user.id, role=user.role)
        return {"Authorization": f"Bearer {token}"}

    def upload(
        self,
        user: User | None,
        title: str = "Sunset",
        price: str = "120",
        content: bytes = JPEG_BYTES,
        filename: str = "a.jpg",
        content_type: str = "image/jpeg",
        **fields: str,
    ):
        data = {"title": title, "price": price, **fields}
        headers = self.auth_headers(user) if user is not None else {}
        return self.client.post(
            "/api/v1/listings",
            data=data,
            files={"image": (filename, content, content_type)},
            headers=headers,
        )

    def listing_count(self) -> int:
        db = self.SessionLocal()
        try:
            return db.query(Listing).count()
        finally:
            db.close()

    def stored_files(self) -> list[Path]:
        return sorted(p for p in self.upload_dir.iterdir() if p.is_file())


def loop_running() -> bool:
    """True when called from a thread that is currently running an asyncio event loop."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
