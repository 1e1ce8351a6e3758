"""Structured logging configuration.

Sets up structlog so every module logs events with keyword context:

    logger.info("tool_dispatched", tool="get_commit_diff", iteration=2)

In development the output is a colorized console line; in production it is
one JSON object per line, ready for a log pipeline.

Usage:
    from changelog_agent.logging_config import setup_logging, get_logger

    setup_logging(environment="production")
    logger = get_logger(__name__)
    logger.info("changelog_started", repo="myorg/api", commits=12)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import structlog

_CHATTY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        environment: "development" or "production". Reads from
                     ENVIRONMENT env var if not provided.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Reads from LOG_LEVEL env var if not provided.
        stream: Where log lines go. Defaults to stderr, which keeps the
                CLI's stdout free for its JSON result.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = getattr(logging, (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper())
    if stream is None:
        stream = sys.stderr

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        renderer = structlog.processors.JSONRenderer()
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
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # Standard library logging, for httpx/openai/uvicorn.
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=level,
    )

    # The HTTP clients log every GitHub and OpenAI request at INFO; only
    # DEBUG lets that through.
    client_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
