"""Structured logging configuration for hn-thread."""

import logging
import sys
from typing import Optional

import structlog

# Per-request INFO lines from these would swamp a thread fetch of a few
# thousand items
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO", json_logs: Optional[bool] = None) -> None:
    """Route structlog events and stdlib client logs to stderr.

    ``json_logs`` defaults to JSON when stderr is not a terminal.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    if json_logs is None:
        json_logs = _is_json_mode()
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _is_json_mode() -> bool:
    return not sys.stderr.isatty()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
