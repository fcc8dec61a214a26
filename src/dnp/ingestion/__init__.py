"""Ingestion package."""

from dnp.ingestion.dates import (
    ParseError,
    check_relevance,
    is_relevant,
    parse_date_range,
)
from dnp.ingestion.gate import NoticeGate
from dnp.ingestion.runner import run_ingestion

__all__ = [
    "ParseError",
    "check_relevance",
    "is_relevant",
    "parse_date_range",
    "NoticeGate",
    "run_ingestion",
]
