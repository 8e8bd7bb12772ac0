"""Logfire setup and logging helpers.

Modules log through ``logging.getLogger(__name__)``; once ``configure_logfire`` has
run, Logfire captures those records along with the spans opened by ``span``.

    logger = logging.getLogger(__name__)
    logger.info("task_created", extra={"user_id": "7", "task_id": "42"})
    log_with_user_context(logger, "info", "task_stream_opened", user_id="7")
"""

import logging

import logfire
from fastapi import FastAPI

from src.core.config import settings


logger = logging.getLogger(__name__)


def configure_logfire() -> None:
    """Configure Logfire for this service.

    Without a token nothing leaves the process; records still go through the
    standard logging handlers.
    """
    logfire.configure(
        token=settings.logfire_token,
        service_name="quicktask",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logger.info("logfire_configured", extra={"environment": settings.environment})


def instrument_fastapi(app: FastAPI) -> None:
    """Trace every request handled by the app."""
    logfire.instrument_fastapi(app)
    logger.info("fastapi_instrumented")


def span(name: str) -> logfire.LogfireSpan:
    """Open a named span around a service operation, e.g. ``span("task_service.list_tasks")``."""
    return logfire.span(name)


def log_with_user_context(
    logger: logging.Logger,
    level: str,
    message: str,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Log ``message`` at ``level`` with the acting user and any extra fields attached.

    ``user_id`` is left out of the record when it is empty.
    """
    context = {"user_id": user_id, **extra} if user_id else extra
    getattr(logger, level.lower())(message, extra=context)
