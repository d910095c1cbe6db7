"""
Structured logging built on structlog.

- configure_logging: one-time processor chain setup driven by settings
- get_logger: module-level bound loggers (`logger = get_logger(__name__)`)
- filter_sensitive_data: processor that redacts credentials but keeps token counts
"""

import logging
import sys
from typing import Any

import structlog

from agentcore.config.settings import settings

REDACTED = "***REDACTED***"

# Substrings that mark a key as sensitive
SENSITIVE_KEYS = ("api_key", "apikey", "password", "secret", "authorization")

_configured = False


def filter_sensitive_data(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Redact credential-like values. Token counters are left untouched."""
    for key in list(event_dict.keys()):
        lowered = key.lower()
        if any(marker in lowered for marker in SENSITIVE_KEYS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structlog processors and the stdlib root handler.

    Args:
        level: Log level name, defaults to settings.log_level
        fmt: "console" or "json", defaults to settings.log_format
    """
    global _configured

    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    renderer_name = fmt or settings.log_format

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer: Any
    if renderer_name == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            filter_sensitive_data,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger bound to the given module name."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)


__all__ = ["configure_logging", "get_logger", "filter_sensitive_data", "REDACTED"]
