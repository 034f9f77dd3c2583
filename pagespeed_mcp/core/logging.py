# pagespeed_mcp/core/logging.py
import logging
import sys
import uuid
from typing import Optional

import structlog

from pagespeed_mcp.core.config import Settings

# structlog has no trace/fatal levels, map them onto the stdlib ones
_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def configure_logging(settings: Settings) -> None:
    """
    Configures structlog for the process.

    Logs always go to stderr because stdout carries the MCP protocol.
    Development gets a colored console renderer, everything else JSON lines.
    """
    renderer = (
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[settings.LOG_LEVEL]),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None):
    return structlog.get_logger(name) if name else structlog.get_logger()


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def get_request_logger(correlation_id: str, tool_name: Optional[str] = None):
    """Returns a logger bound to one tool invocation."""
    log = structlog.get_logger().bind(correlation_id=correlation_id)
    if tool_name:
        log = log.bind(tool=tool_name)
    return log
