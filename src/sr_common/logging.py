"""
Structured logging setup for the speaker resolution engine.

Configures structlog for JSON-formatted structured logging. Every log line
includes timestamp, level, service name, and event. Per-meeting context
(meeting_id, channel_label) is bound at call sites.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(
    service_name: str = "speaker-resolution",
    *,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Install the process-wide structlog configuration.

    Args:
        service_name: Value bound as ``service`` on every log line.
        level: Minimum level name (``DEBUG`` … ``CRITICAL``).
        json_output: Render JSON lines; otherwise a human console format.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)
