"""Delivery channels for password-reset one-time codes (email/SMS gateway webhook)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import httpx

from app.core.config import get_settings
from app.core.exceptions import DeliveryFailure

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


class CodeDeliveryChannel(Protocol):
    async def send(self, destination: str, code: str) -> None:
        """Deliver `code` to `destination`; raise DeliveryFailure if it was not accepted."""
        ...


class WebhookDeliveryChannel:
    """
    POSTs {"destination", "code", "purpose"} as JSON to a mail/SMS gateway.

    Any transport error or non-2xx response is a DeliveryFailure. No retries.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(self, destination: str, code: str) -> None:
        payload = {"destination": destination, "code": code, "purpose": "password_reset"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise DeliveryFailure("Code delivery timed out.") from e
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"Code delivery gateway unreachable: {e!s}") from e
        if response.status_code >= 300:
            logger.warning(
                "Code delivery rejected: status=%s body=%s",
                response.status_code,
                response.text[:200],
            )
            raise DeliveryFailure(
                f"Code delivery gateway returned status {response.status_code}."
            )
        logger.info("Reset code sent via webhook")


class LogDeliveryChannel:
    """Development channel: writes the code to the application log instead of sending it."""

    async def send(self, destination: str, code: str) -> None:
        logger.warning("DEV ONLY: password reset code for %s is %s", destination, code)


class UnconfiguredDeliveryChannel:
    """Production without OTP_WEBHOOK_URL: every send fails."""

    async def send(self, destination: str, code: str) -> None:
        raise DeliveryFailure("Code delivery is not configured (set OTP_WEBHOOK_URL).")


def build_delivery_channel(settings: Settings) -> CodeDeliveryChannel:
    if settings.OTP_WEBHOOK_URL:
        token = (
            settings.OTP_WEBHOOK_TOKEN.get_secret_value()
            if settings.OTP_WEBHOOK_TOKEN is not None
            else None
        )
        return WebhookDeliveryChannel(
            settings.OTP_WEBHOOK_URL,
            token=token,
            timeout=settings.OTP_REQUEST_TIMEOUT_SEC,
        )
    if settings.APP_ENV == "dev":
        return LogDeliveryChannel()
    return UnconfiguredDeliveryChannel()


def get_delivery_channel() -> CodeDeliveryChannel:
    """FastAPI dependency; override in tests."""
    return build_delivery_channel(get_settings())
