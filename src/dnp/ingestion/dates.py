"""Bulgarian date parsing and relevance windows for scraped notices.

Municipal sites publish dates as ``27.01.2026``, ``15-19.03.2026``,
``15.02-19.03.2026``, ``01.03.2026 - 28.03.2026``
or ``27 януари (вторник) 2026``. ``parse_date_range`` tries
those shapes in a fixed order, most specific first, and raises ``ParseError``.
The single-date helpers near the bottom keep the older crawler contract of
falling back to the current time so a bad date never aborts a crawl.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from dnp.models import DateRange
from dnp.utils.logging import get_logger
from dnp.utils.time import SOFIA_TZ, now_local, to_local_date


logger = get_logger(__name__)


class ParseError(ValueError):
    """Date text matched no supported grammar or named an impossible day."""


BULGARIAN_MONTHS: dict[str, int] = {
    "януари": 1,
    "февруари": 2,
    "март": 3,
    "април": 4,
    "май": 5,
    "юни": 6,
    "юли": 7,
    "август": 8,
    "септември": 9,
    "октомври": 10,
    "ноември": 11,
    "декември": 12,
}

# A day group must not start inside another number or date, e.g. the "26" of "2026".
_DAY = r"(?<![\d./])(\d{1,2})"
_YEAR = r"(\d{4}|\d{2})(?!\d)"
_FULL_RANGE_RE = re.compile(
    _DAY + r"\.(\d{1,2})\.(?:" + _YEAR + r")\s*-\s*(\d{1,2})\.(\d{1,2})\.(?:" + _YEAR + r")",
    re.ASCII,
)
_CROSS_MONTH_RE = re.compile(
    _DAY + r"\.(\d{1,2})\s*-\s*(\d{1,2})\.(\d{1,2})\.(?:" + _YEAR + r")", re.ASCII
)
_SAME_MONTH_RE = re.compile(_DAY + r"\s*-\s*(\d{1,2})\.(\d{1,2})\.(?:" + _YEAR + r")", re.ASCII)
_NUMERIC_RE = re.compile(_DAY + r"[./](\d{1,2})[./](?:" + _YEAR + r")", re.ASCII)
_MONTH_NAME_RE = re.compile(r"(?<!\d)(\d{1,2})\s+([а-яѝ]+)\s+(\d{4})(?!\d)")
_PARENTHESIZED_RE = re.compile(r"\([^)]*\)")

_CANDIDATE_PATTERNS = (
    re.compile(r"(?<![\d./])(\d{1,2}\.\d{1,2}\.\d{2,4}\s*-\s*\d{1,2}\.\d{1,2}\.\d{2,4})(?!\d)"),
    re.compile(r"(?<![\d./])(\d{1,2}\.\d{1,2}\s*-\s*\d{1,2}\.\d{1,2}\.\d{2,4})(?!\d)"),
    re.compile(r"(?<![\d./])(\d{1,2}\s*-\s*\d{1,2}\.\d{1,2}\.\d{2,4})(?!\d)"),
    re.compile(r"(?<![\d./])(\d{1,2}[./]\d{1,2}[./]\d{2,4})(?!\d)"),
    re.compile(r"(?<!\d)(\d{1,2}\s+[а-яА-Я]+(?:\s*\([^)]*\))?\s+\d{4}(?:\s*г\.)?)"),
)


def _year(raw: str) -> int:
    value = int(raw)
    return 2000 + value if len(raw) == 2 else value


def build_date(year: int, month: int, day: int) -> date:
    """Build a calendar date, rejecting values that do not round-trip."""
    try:
        built = date(year, month, day)
    except ValueError as exc:
        raise ParseError(f"Invalid date: {day}.{month}.{year}") from exc
    if (built.year, built.month, built.day) != (year, month, day):
        raise ParseError(f"Invalid date: {day}.{month}.{year}")
    return built


def _range(start: date, end: date) -> DateRange:
    try:
        return DateRange(start=start, end=end)
    except ValidationError as exc:
        raise ParseError(f"Range start {start} is after end {end}") from exc


def _full_range(text: str) -> Optional[DateRange]:
    match = _FULL_RANGE_RE.search(text)
    if not match:
        return None
    start_day, start_month, start_year, end_day, end_month, end_year = match.groups()
    return _range(
        build_date(_year(start_year), int(start_month), int(start_day)),
        build_date(_year(end_year), int(end_month), int(end_day)),
    )


def _cross_month(text: str) -> Optional[DateRange]:
    match = _CROSS_MONTH_RE.search(text)
    if not match:
        return None
    start_day, start_month, end_day, end_month, year_raw = match.groups()
    year = _year(year_raw)
    return _range(
        build_date(year, int(start_month), int(start_day)),
        build_date(year, int(end_month), int(end_day)),
    )


def _same_month(text: str) -> Optional[DateRange]:
    match = _SAME_MONTH_RE.search(text)
    if not match:
        return None
    start_day, end_day, month, year_raw = match.groups()
    year = _year(year_raw)
    return _range(
        build_date(year, int(month), int(start_day)),
        build_date(year, int(month), int(end_day)),
    )


def _numeric_single(text: str) -> Optional[DateRange]:
    match = _NUMERIC_RE.search(text)
    if not match:
        return None
    day, month, year_raw = match.groups()
    single = build_date(_year(year_raw), int(month), int(day))
    return _range(single, single)


def _month_name_single(text: str) -> Optional[DateRange]:
    match = _MONTH_NAME_RE.search(text)
    if not match:
        return None
    day, month_name, year = match.groups()
    month = BULGARIAN_MONTHS.get(month_name)
    if month is None:
        raise ParseError(f"Unsupported Bulgarian month: {month_name}")
    single = build_date(int(year), month, int(day))
    return _range(single, single)


# Order matters: a short pattern must not pre-empt a more specific one.
DATE_MATCHERS: tuple[Callable[[str], Optional[DateRange]], ...] = (
    _full_range,
    _cross_month,
    _same_month,
    _numeric_single,
    _month_name_single,
)


def normalize_date_text(text: str) -> str:
    """Lower-case, drop parenthesised weekday notes and collapse whitespace."""
    value = _PARENTHESIZED_RE.sub(" ", text.strip().lower())
    return re.sub(r"\s+", " ", value).strip()


def parse_date_range(text: str) -> DateRange:
    """Parse Bulgarian date text into an inclusive day range.

    Raises ParseError when no grammar matches or the matched date is invalid.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError(f"Unable to parse Bulgarian date text: {text!r}")

    normalized = normalize_date_text(text)
    for matcher in DATE_MATCHERS:
        result = matcher(normalized)
        if result is not None:
            return result

    raise ParseError(f"Unable to parse Bulgarian date text: {text!r}")


def is_relevant(
    date_range: DateRange,
    reference: Optional[Union[date, datetime]] = None,
    tz: ZoneInfo = SOFIA_TZ,
) -> bool:
    """True iff the reference day lies within the range, both ends inclusive."""
    day = to_local_date(reference, tz)
    return date_range.start <= day <= date_range.end


def has_date_like_text(text: str) -> bool:
    return any(pattern.search(text) for pattern in _CANDIDATE_PATTERNS)


def extract_date_candidate(text: str) -> Optional[str]:
    """Pull the first date-looking fragment out of listing text."""
    normalized = re.sub(r"\s+", " ", text or "").strip()
    for pattern in _CANDIDATE_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return match.group(1)
    return None


@dataclass(frozen=True)
class RelevanceCheck:
    """Relevance verdict with the fail-open fallback spelled out."""

    relevant: bool
    date_range: Optional[DateRange] = None
    candidate: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed_open(self) -> bool:
        return self.error is not None


def check_relevance(
    text: str,
    reference: Optional[Union[date, datetime]] = None,
    tz: ZoneInfo = SOFIA_TZ,
) -> RelevanceCheck:
    """Decide whether a notice's date text is current.

    Text with no recognisable date, or a date that fails to parse, is kept and
    the returned check carries the error.
    """
    candidate = extract_date_candidate(text)
    if candidate is None:
        logger.warning("dates.no_candidate text=%r", (text or "")[:80])
        return RelevanceCheck(relevant=True, error="no_date_candidate")

    try:
        date_range = parse_date_range(candidate)
    except ParseError as exc:
        logger.warning("dates.unparsable candidate=%r error=%s", candidate, exc)
        return RelevanceCheck(relevant=True, candidate=candidate, error=str(exc))

    return RelevanceCheck(
        relevant=is_relevant(date_range, reference, tz),
        date_range=date_range,
        candidate=candidate,
    )


def parse_bulgarian_datetime(text: str, tz: ZoneInfo = SOFIA_TZ) -> datetime:
    """Parse strict ``DD.MM.YYYY HH:MM`` into an aware datetime."""
    if not isinstance(text, str):
        raise ParseError(f"Invalid date string: {text!r}")

    match = re.fullmatch(r"(\d{2})\.(\d{2})\.(\d{4})\s+(\d{2}):(\d{2})", text.strip(), re.ASCII)
    if not match:
        raise ParseError(f'Date string does not match "DD.MM.YYYY HH:MM": {text!r}')

    day, month, year, hour, minute = (int(part) for part in match.groups())
    if not 0 <= hour <= 23:
        raise ParseError(f"Invalid hour: {hour}")
    if not 0 <= minute <= 59:
        raise ParseError(f"Invalid minute: {minute}")

    day_value = build_date(year, month, day)
    return datetime(day_value.year, day_value.month, day_value.day, hour, minute, tzinfo=tz)


def format_bulgarian_datetime(value: datetime) -> str:
    """Format as ``DD.MM.YYYY HH:MM``."""
    return value.strftime("%d.%m.%Y %H:%M")


def parse_bulgarian_date(text: str, tz: ZoneInfo = SOFIA_TZ) -> datetime:
    """Parse ``DD.MM.YYYY``, ``DD/MM/YYYY`` or ``DD.MM.YY``.

    Falls back to the current time on failure so the crawl keeps going.
    """
    parts = (text or "").strip().replace("/", ".").split(".")
    if len(parts) == 3 and all(part.isdigit() for part in parts):
        day, month, year_raw = parts
        try:
            day_value = build_date(_year(year_raw), int(month), int(day))
            return datetime(day_value.year, day_value.month, day_value.day, tzinfo=tz)
        except ValueError:
            pass

    logger.warning("dates.fallback_to_now kind=numeric text=%r", text)
    return now_local(tz)


def parse_short_bulgarian_datetime(
    date_text: str,
    time_text: Optional[str] = None,
    tz: ZoneInfo = SOFIA_TZ,
) -> datetime:
    """Parse ``DD.MM.YY`` with an optional ``HH:MM``; current time on failure."""
    parts = (date_text or "").strip().replace("/", ".").split(".")
    if len(parts) == 3 and all(part.isdigit() for part in parts):
        hour, minute = 0, 0
        if time_text:
            time_parts = time_text.strip().split(":")
            if len(time_parts) == 2 and all(part.isdigit() for part in time_parts):
                hour, minute = int(time_parts[0]), int(time_parts[1])
        day, month, short_year = parts
        try:
            day_value = build_date(_year(short_year), int(month), int(day))
            return datetime(
                day_value.year, day_value.month, day_value.day, hour, minute, tzinfo=tz
            )
        except ValueError:
            pass

    logger.warning("dates.fallback_to_now kind=short text=%r time=%r", date_text, time_text)
    return now_local(tz)


def parse_bulgarian_month_date(text: str, tz: ZoneInfo = SOFIA_TZ) -> datetime:
    """Parse ``DD <месец> YYYY``; current time on failure."""
    match = re.fullmatch(r"(\d{1,2})\s+(\S+)\s+(\d{4})", (text or "").strip())
    if match:
        day, month_name, year = match.groups()
        month = BULGARIAN_MONTHS.get(month_name.lower())
        if month is not None:
            try:
                day_value = build_date(int(year), month, int(day))
                return datetime(day_value.year, day_value.month, day_value.day, tzinfo=tz)
            except ValueError:
                pass

    logger.warning("dates.fallback_to_now kind=month_name text=%r", text)
    return now_local(tz)
