from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response
from structlog.contextvars import bind_contextvars, clear_contextvars

from carrier_onboarding.api.routes import register_routes
from carrier_onboarding.core.config import get_settings
from carrier_onboarding.core.logging import setup_logging
from carrier_onboarding.infrastructure.db.session import dispose_engine

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    await logger.ainfo(
        "service_startup",
        service=settings.app_name,
        environment=settings.environment,
        version=settings.version,
    )
    yield
    # Live workflows are already saved after every action.
    app.state.workflow_registry = None
    await dispose_engine()
    await logger.ainfo("service_shutdown", service=settings.app_name)


def create_app() -> FastAPI:
    """Application factory for the carrier onboarding API."""
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    origins = ["*"] if settings.environment in ("local", "development") else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    register_routes(app)

    @app.middleware("http")
    async def correlation_id_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid4().hex
        bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_contextvars()
        response.headers["X-Request-ID"] = request_id
        return response

    return app


app = create_app()
