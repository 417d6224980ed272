from __future__ import annotations

import logging
import sys

"""Logging initialization with labeled prefixes.

Every line written by the CLI starts with one of the labels
INFO|WARN|ERROR|SUMMARY. SUMMARY is a custom level between INFO and WARNING
used for the one-line import / flush summaries.

Library modules log through ``logging.getLogger(__name__)``; their records
propagate to the ``mecollect`` logger configured here.
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
    "LabeledFormatter",
    "SUMMARY_LEVEL",
]

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25

LOGGER_NAME = "mecollect"

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """Formats records as ``LABEL message``."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        return f"{level_label} {record.getMessage()}"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure the ``mecollect`` logger (idempotent).

    Output goes to stdout so it interleaves with CLI output. ``debug=True``
    lowers the level of an already configured logger as well.
    """
    global _logger

    level = logging.DEBUG if debug else logging.INFO

    if _logger is not None:
        if debug:
            _logger.setLevel(level)
            for h in _logger.handlers:
                h.setLevel(level)
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Clear any existing handlers to avoid duplication
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    # ルートロガーへの伝播を止めて二重出力を防ぐ
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Return the configured application logger, configuring it on first use."""
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str) -> None:
    """Log a message at SUMMARY level."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    _logger = None
