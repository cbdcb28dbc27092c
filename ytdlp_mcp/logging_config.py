"""
Logging setup shared by the HTTP and stdio entry points.

structlog renders the transport layer's records; core modules log through
the standard library and are routed to the same stream. The stdio MCP
transport must pass ``sys.stderr`` because stdout carries the protocol.
"""

import logging
import sys
from typing import TextIO

import structlog


def configure_logging(level: str = "info", stream: TextIO | None = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        level: Level name such as "debug" or "info"
        stream: Output stream; defaults to stdout
    """
    stream = stream or sys.stdout
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        level=numeric_level,
        stream=stream,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )
