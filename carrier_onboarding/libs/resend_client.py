"""
Resend API client for onboarding emails (verification codes, agent requests).
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
import structlog

from carrier_onboarding.core.config import get_settings

logger = structlog.get_logger(__name__)


class ResendClientError(Exception):
    """Base exception for Resend client errors."""


class ResendAPIError(ResendClientError):
    """Raised for non-success responses from Resend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True, frozen=True)
class OutgoingEmail:
    to: tuple[str, ...]
    subject: str
    html: str
    text: str
    category: str
    sender: str | None = None
    # Resend drops a repeated send carrying the same key for 24 hours.
    idempotency_key: str | None = None
    tags: dict[str, str] = field(default_factory=dict)

    def payload(self, default_sender: str) -> dict:
        tags = {"category": self.category, **self.tags}
        return {
            "from": self.sender or default_sender,
            "to": list(self.to),
            "subject": self.subject,
            "html": self.html,
            "text": self.text,
            "tags": [{"name": name, "value": value} for name, value in tags.items()],
        }


class ResendClient:
    """Async Resend API client."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.resend_api_key
        self.base_url = (base_url or settings.resend_base_url).rstrip("/")
        self.default_sender = settings.resend_from_email
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.resend_timeout_seconds
        )
        self._transport = transport

        if not self.api_key:
            logger.warning("resend_api_key_missing", msg="RESEND_API_KEY not configured")

    async def send(self, email: OutgoingEmail) -> str:
        """Send one email and return the Resend message id."""
        if not self.api_key:
            raise ResendClientError("RESEND_API_KEY not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        if email.idempotency_key:
            headers["Idempotency-Key"] = email.idempotency_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/emails",
                    headers=headers,
                    json=email.payload(self.default_sender),
                )
        except httpx.HTTPError as exc:
            raise ResendClientError(f"Resend request failed: {exc}") from exc

        if response.status_code not in (200, 201):
            await logger.awarning(
                "resend_send_rejected",
                category=email.category,
                status_code=response.status_code,
            )
            raise ResendAPIError(
                f"Resend error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            message_id = response.json().get("id")
        except ValueError as exc:
            raise ResendAPIError(
                "Resend response was not valid JSON", status_code=response.status_code
            ) from exc
        if not message_id:
            raise ResendAPIError("Resend response missing email id", status_code=response.status_code)
        return message_id
