"""Bearer tokens issued by the marketplace identity service.

The onboarding API never logs anyone in; it only verifies the signed token
and reads who the caller is. ``create_access_token`` exists for local tooling and
tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

import jwt

from carrier_onboarding.core.config import get_settings


class TokenError(Exception):
    """Raised when a token cannot be decoded or validated."""


class Role(str, Enum):
    CARRIER = "carrier"
    SHIPPER = "shipper"
    ADMIN = "admin"


_KNOWN_ROLES = frozenset(role.value for role in Role)


@dataclass(slots=True, frozen=True)
class TokenClaims:
    subject: str
    roles: tuple[str, ...]
    email: str = ""

    def has_any_role(self, roles: Sequence[str]) -> bool:
        return any(role in self.roles for role in roles)


def create_access_token(
    subject: str,
    *,
    roles: Sequence[str],
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    settings = get_settings()
    _check_roles(roles, allowed=settings.allowed_roles)

    issued_at = datetime.now(UTC)
    ttl = expires_delta or timedelta(seconds=settings.access_token_ttl_seconds)
    claims: dict = {
        "sub": subject,
        "roles": list(roles),
        "iat": issued_at,
        "exp": issued_at + ttl,
        "iss": settings.app_name,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def read_access_token(token: str) -> TokenClaims:
    """Verify signature, expiry and issuer, then return the caller's claims."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.app_name,
            options={"require": ["sub", "roles", "exp", "iss"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token has expired") from exc
    except jwt.PyJWTError as exc:
        raise TokenError("Invalid token") from exc

    roles = payload["roles"]
    if not isinstance(roles, list):
        raise TokenError("Token roles must be a list")
    _check_roles(roles, allowed=_KNOWN_ROLES)

    return TokenClaims(
        subject=str(payload["sub"]),
        roles=tuple(roles),
        email=payload.get("email", ""),
    )


def _check_roles(roles: Sequence[str], *, allowed) -> None:
    unknown = [role for role in roles if role not in allowed]
    if unknown:
        raise TokenError(f"Unsupported role(s): {', '.join(unknown)}")
