"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional


_NOISY_LOGGERS = ("httpx", "httpcore", "psycopg")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logger once."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # Request logs carry geocoder query strings and push endpoints with bearer headers.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
