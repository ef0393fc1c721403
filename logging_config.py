"""
logging_config.py - Centralized logging configuration.

Provides consistent logging setup across all modules. Log messages follow
the pipe-delimited convention used everywhere in this codebase:

    delta_complete | semantic_status=NoRisk | items_reviewed=4 | ...
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

LEVEL_NAMES: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def resolve_log_level(value: object, fallback: int = logging.INFO) -> int:
    """Map a level name or number (e.g. from LOG_LEVEL) to a logging level."""
    if isinstance(value, int):
        return value
    text = str(value or "").strip().upper()
    if not text:
        return fallback
    if text.isdigit():
        return int(text)
    return LEVEL_NAMES.get(text, fallback)


def setup_logging(level: Optional[int] = None, json_format: Optional[bool] = None) -> None:
    """Configure root logger with consistent formatting.

    Args:
        level: Logging level. Read from LOG_LEVEL when omitted.
        json_format: If True, emit JSON-like log lines. Read from LOG_JSON
            when omitted.
    """
    if level is None:
        level = resolve_log_level(os.getenv("LOG_LEVEL"))
    if json_format is None:
        json_format = os.getenv("LOG_JSON", "").strip().lower() in {"1", "true", "yes", "on"}

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if json_format:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
            '"module":"%(name)s","message":"%(message)s"}',
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(name)-20s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)
