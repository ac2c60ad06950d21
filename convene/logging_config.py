"""
Structured logging configuration using structlog wrapping stdlib.

Provides JSON-formatted structured log output in production and
human-readable console output in development.

Engine log calls are key/value events ("event_confirmed", event_id=...),
so the JSON output can be filtered per event.

Usage:
    from convene.logging_config import setup_logging
    setup_logging()
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    if level is None:
        level = os.environ.get("CONVENE_LOG_LEVEL")
    if level is None:
        from convene.config import get_config

        level = get_config().logging.level

    if json_output is None:
        json_output = os.environ.get("CONVENE_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # aiohttp is chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def event_context(event_id: str):
    """
    Tag every log line emitted inside the block with event_id.

    Covers loggers in other modules too (gateway, store), since the value
    travels through structlog's contextvars rather than a bound logger.

        with event_context(event_id):
            await gateway.create_external_event(...)
    """
    return structlog.contextvars.bound_contextvars(event_id=event_id)


__all__ = ["event_context", "get_logger", "setup_logging"]
