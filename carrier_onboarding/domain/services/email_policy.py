"""Business email pre-filter applied before the registry lookup."""

from __future__ import annotations

import re

from carrier_onboarding.domain.errors import ValidationError

_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@([A-Za-z0-9\-]+\.)+[A-Za-z]{2,}$")

FREE_EMAIL_DOMAINS: frozenset[str] = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "yahoo.com",
        "ymail.com",
        "hotmail.com",
        "outlook.com",
        "live.com",
        "msn.com",
        "aol.com",
        "icloud.com",
        "protonmail.com",
        "mail.com",
        "gmx.com",
    }
)


def email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].strip().lower()


def is_free_email_domain(email: str) -> bool:
    return email_domain(email) in FREE_EMAIL_DOMAINS


def validate_business_email(raw: str) -> str:
    """Return the normalized address or raise ``ValidationError``.

    This is a coarse filter, not proof of ownership: it only rejects malformed
    addresses and the common consumer mail providers.
    """
    email = (raw or "").strip().lower()
    if not _EMAIL_PATTERN.match(email):
        raise ValidationError("Please enter a valid email address")

    domain = email_domain(email)
    if domain in FREE_EMAIL_DOMAINS:
        raise ValidationError(f"Please use your business email address (not {domain})")
    return email
