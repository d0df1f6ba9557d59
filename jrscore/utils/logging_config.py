"""
jrscore/utils/logging_config.py

One-time structlog setup. Modules keep using
`structlog.get_logger(__name__)` and event-style calls:

    logger.info("jr_score_persisted", user_id=..., source="gemini")
"""

from __future__ import annotations

import logging

import structlog

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Configure structlog for the process. Unknown levels fall back to INFO."""
    numeric_level = _LEVELS.get((level or "INFO").upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
