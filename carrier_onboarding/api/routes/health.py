from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from carrier_onboarding.core.config import Settings, get_settings
from carrier_onboarding.infrastructure.db.session import get_session_factory

router = APIRouter(tags=["Observability"])
logger = structlog.get_logger()


async def check_postgres() -> dict:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        return {"status": "error", "message": str(exc)[:100]}
    return {"status": "ok"}


def integration_status(settings: Settings) -> dict[str, str]:
    """Which external services have credentials; nothing is called."""
    configured = {
        "carrier_registry": bool(settings.carrier_ok_api_key),
        "email": bool(settings.resend_api_key),
        "document_storage": bool(settings.storage_base_url and settings.storage_service_key),
        "payouts": bool(settings.stripe_secret_key),
    }
    return {name: "configured" if ok else "missing" for name, ok in configured.items()}


@router.get("/health", summary="Service health probe")
async def health_check() -> dict:
    """Database reachability decides ``status``; integrations are informational."""
    settings = get_settings()
    postgres = await check_postgres()

    payload = {
        "service": settings.app_name,
        "version": settings.version,
        "status": "ok" if postgres["status"] == "ok" else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "datastores": {"postgres": postgres},
        "integrations": integration_status(settings),
    }
    await logger.ainfo("health_probe", status=payload["status"])
    return payload
