from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carrier_onboarding.api.workflows import WorkflowRegistry, build_workflow_registry
from carrier_onboarding.core.auth import Role, TokenClaims, TokenError, read_access_token
from carrier_onboarding.core.logging import bind_carrier
from carrier_onboarding.domain import User

bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
) -> TokenClaims:
    """Resolve the verified claims of the bearer token."""
    if credentials is None:
        raise _unauthorized("Missing bearer token")

    try:
        claims = read_access_token(credentials.credentials)
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc

    if not claims.subject:
        raise _unauthorized("Token missing subject")
    return claims


async def get_current_carrier(
    claims: TokenClaims = Depends(get_token_claims),  # noqa: B008
) -> User:
    """The authenticated carrier; its user id doubles as the onboarding key."""
    if not claims.has_any_role([Role.CARRIER.value]):
        raise _forbidden("Only carriers can onboard")

    bind_carrier(claims.subject)
    return User(user_id=claims.subject, email=claims.email, roles=list(claims.roles))


def get_workflow_registry(request: Request) -> WorkflowRegistry:
    """Registry built on first use and kept on the application state."""
    registry = getattr(request.app.state, "workflow_registry", None)
    if registry is None:
        registry = build_workflow_registry()
        request.app.state.workflow_registry = registry
    return registry


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
