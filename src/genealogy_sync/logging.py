"""Structlog-based logging for Genealogy Sync.

Library code logs through structlog; nothing prints.
"""
from __future__ import annotations

from typing import Literal

import logging
import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def configure_logging(level: LogLevel = "INFO", json: bool = True) -> None:
    """Configure stdlib logging and structlog together.

    Args:
        level: Minimum level emitted by both stdlib and structlog loggers.
        json: Render JSON lines; the CLI switches to the console renderer.
    """
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        # Bind the output stream per call so a redirected stdout is honored
        cache_logger_on_first_use=False,
    )


# Initialize default config
configure_logging()
