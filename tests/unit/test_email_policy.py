from __future__ import annotations

import pytest

from carrier_onboarding.domain.errors import ValidationError
from carrier_onboarding.domain.services.email_policy import (
    is_free_email_domain,
    validate_business_email,
)


def test_business_address_is_normalized() -> None:
    assert validate_business_email("  Dispatch@LoneStarHaulers.com ") == "dispatch@lonestarhaulers.com"


@pytest.mark.parametrize("domain", ["gmail.com", "yahoo.com", "hotmail.com", "outlook.com"])
def test_free_webmail_is_refused(domain: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_business_email(f"driver@{domain}")

    assert exc_info.value.message == f"Please use your business email address (not {domain})"
    assert exc_info.value.retryable is False


@pytest.mark.parametrize("raw", ["", "not-an-email", "a@b", "two@@example.com"])
def test_malformed_address_is_refused(raw: str) -> None:
    with pytest.raises(ValidationError, match="valid email address"):
        validate_business_email(raw)


def test_free_domain_check_ignores_case() -> None:
    assert is_free_email_domain("Someone@GMAIL.com") is True
    assert is_free_email_domain("ops@lonestarhaulers.com") is False
