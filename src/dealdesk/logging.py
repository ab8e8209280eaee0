"""structlog configuration shared by the application and the CLI scripts.

The active deal is carried as structlog context (``deal_id``) so every event
logged after a selection change is attributable to the deal it touched.
"""

from __future__ import annotations

import logging

import structlog

from src.dealdesk.config import Environment, Settings, get_settings


def configure_structlog(settings: Settings | None = None) -> None:
    """Configure stdlib logging and structlog processors based on environment."""
    settings = settings or get_settings()

    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.ENVIRONMENT == Environment.production:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_deal_context(deal_id: int | None) -> None:
    """Tag subsequent log events with the active deal; None clears the tag."""
    if deal_id is None:
        structlog.contextvars.unbind_contextvars("deal_id")
    else:
        structlog.contextvars.bind_contextvars(deal_id=deal_id)
