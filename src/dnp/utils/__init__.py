"""Utility helpers."""

from dnp.utils.logging import configure_logging, get_logger
from dnp.utils.text import normalize_categories_input, normalize_whitespace
from dnp.utils.time import SOFIA_TZ, today_local, to_local_date

__all__ = [
    "configure_logging",
    "get_logger",
    "normalize_categories_input",
    "normalize_whitespace",
    "SOFIA_TZ",
    "today_local",
    "to_local_date",
]
