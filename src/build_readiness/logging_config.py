"""Structured logging setup for the build readiness service.

Logs are emitted through structlog as event names plus key/value context,
e.g. ``{"event": "release_replaced", "release_id": "2024.11", "rows": 42}``.
Development gets a colorized console renderer; production gets one JSON
object per line so log collectors can filter by release or event.

Usage:
    from build_readiness.logging_config import setup_logging, get_logger

    setup_logging(environment="production")
    logger = get_logger(__name__)
    logger.info("ingest_complete", release_id="2024.11", inserted=42)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        environment: "development" or "production". Falls back to the
                     ENVIRONMENT env var, then "development".
        log_level: DEBUG, INFO, WARNING or ERROR. Falls back to the
                   LOG_LEVEL env var, then INFO.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = getattr(logging, (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper())

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # stdout is reserved for CLI output; uvicorn, httpx and openai log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)


def get_logger(name: str) -> Any:
    """Return a structlog bound logger named after the calling module."""
    return structlog.get_logger(name)
