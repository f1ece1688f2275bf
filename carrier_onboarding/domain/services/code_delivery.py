"""
One-time verification codes delivered by email.

- Codes are 6 digits drawn with ``secrets``; only a peppered SHA-256 hash is kept.
- One active code per email; sending again replaces the previous cycle's code.
- Codes expire after ``verification_code_ttl_seconds``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from carrier_onboarding.core.config import get_settings
from carrier_onboarding.domain.errors import DeliveryError
from carrier_onboarding.libs.resend_client import OutgoingEmail, ResendClient, ResendClientError

logger = structlog.get_logger(__name__)

CODE_LENGTH = 6


class CodeDeliveryService(Protocol):
    """Protocol for code delivery (allows test doubles)."""

    async def send_code(self, email: str) -> None:
        """Deliver a fresh code or raise DeliveryError."""
        ...

    async def confirm_code(self, email: str, code: str) -> bool:
        """True iff ``code`` is the one issued to ``email`` in the current cycle."""
        ...


@dataclass(slots=True)
class _IssuedCode:
    code_hash: str
    expires_at: datetime


def generate_code() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(CODE_LENGTH))


class EmailCodeDeliveryService:
    """Issues codes, emails them through Resend and verifies submissions."""

    def __init__(
        self,
        client: ResendClient | None = None,
        *,
        ttl_seconds: int | None = None,
        pepper: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = get_settings()
        self.client = client or ResendClient()
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else settings.verification_code_ttl_seconds
        )
        self._pepper = pepper if pepper is not None else settings.verification_code_pepper
        self._clock = clock or (lambda: datetime.now(UTC))
        self._issued: dict[str, _IssuedCode] = {}

    def _hash(self, email: str, code: str) -> str:
        return hashlib.sha256(f"{email}:{code}:{self._pepper}".encode()).hexdigest()

    async def send_code(self, email: str) -> None:
        email = email.strip().lower()
        code = generate_code()
        minutes = max(1, int(self.ttl.total_seconds()) // 60)

        try:
            message_id = await self.client.send(
                OutgoingEmail(
                    to=(email,),
                    subject="Your carrier verification code",
                    html=(
                        f"<p>Your verification code is <strong>{code}</strong>.</p>"
                        f"<p>It expires in {minutes} minutes.</p>"
                    ),
                    text=f"Your verification code is {code}. It expires in {minutes} minutes.",
                    category="carrier_verification_code",
                )
            )
        except ResendClientError as exc:
            await logger.aerror("verification_code_send_failed", email=email, error=str(exc))
            raise DeliveryError("Failed to send verification code. Please try again.") from exc

        now = self._clock()
        self._prune_expired(now)
        # Only replace the previous code once the new one was actually delivered.
        self._issued[email] = _IssuedCode(
            code_hash=self._hash(email, code),
            expires_at=now + self.ttl,
        )
        await logger.ainfo("verification_code_sent", email=email, resend_id=message_id)

    def _prune_expired(self, now: datetime) -> None:
        expired = [email for email, issued in self._issued.items() if issued.expires_at <= now]
        for email in expired:
            del self._issued[email]

    async def confirm_code(self, email: str, code: str) -> bool:
        email = email.strip().lower()
        issued = self._issued.get(email)
        if issued is None:
            return False

        if self._clock() >= issued.expires_at:
            self._issued.pop(email, None)
            await logger.ainfo("verification_code_expired", email=email)
            return False

        if not hmac.compare_digest(issued.code_hash, self._hash(email, code)):
            return False

        self._issued.pop(email, None)
        return True
