from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Any

import structlog

from carrier_onboarding.core.config import Settings

_CONFIGURED = False

# Verification codes and tokens must never reach a log line.
_REDACTED_KEYS = frozenset({"code", "token", "authorization", "api_key"})


def _redact_secrets(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _service_fields(settings: Settings) -> Callable[..., dict[str, Any]]:
    def add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("environment", settings.environment)
        return event_dict

    return add_service


def setup_logging(settings: Settings) -> None:
    """Configure structlog once for the process.

    Local and test runs get the console renderer, everything else JSON lines.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)

    json_logs = settings.environment not in ("local", "test")
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            _service_fields(settings),
            _redact_secrets,
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def bind_carrier(carrier_id: str, **extra: Any) -> None:
    """Attach the acting carrier to every log line of the current request."""
    structlog.contextvars.bind_contextvars(carrier_id=carrier_id, **extra)
