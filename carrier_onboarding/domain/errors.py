"""Exceptions raised at the onboarding component boundaries.

Transient failures (``retryable = True``) are never retried automatically;
the carrier re-invokes the same action. A failed eligibility check is not an
exception at all: it is a normal outcome that routes the workflow to
``rejected``.
"""

from __future__ import annotations


class OnboardingError(Exception):
    """Base exception for onboarding workflow errors."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(OnboardingError):
    """Raised when the registry has no carrier for the identifying number."""


class LookupUnavailableError(OnboardingError):
    """Raised when the registry cannot be reached or answers with an error."""

    retryable = True


class DeliveryError(OnboardingError):
    """Raised when a verification code or attestation request was not delivered."""

    retryable = True


class StorageError(OnboardingError):
    """Raised when a document upload does not reach storage."""

    retryable = True


class LinkError(OnboardingError):
    """Raised when the financial account connection cannot be established."""

    retryable = True


class PersistError(OnboardingError):
    """Raised when the finalized profile cannot be written to the system of record."""

    retryable = True


class ValidationError(OnboardingError):
    """Raised for input the carrier must correct before trying again."""


class VerificationLockedError(ValidationError):
    """Raised after too many wrong codes; a new code must be requested."""


class InvalidTransitionError(OnboardingError):
    """Raised when an action is not allowed in the current stage."""


class StaleRequestError(OnboardingError):
    """Raised when a result arrives after a newer request superseded it."""
