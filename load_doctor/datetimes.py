"""Date/time extraction and UTC normalization for appointment cells.

Every function here is pure: it looks at one or two cells plus a zone and
returns a value or ``None``. Nothing records which rows needed a fallback
zone; callers do that with the ``assumed`` flag returned by
:func:`normalize_to_iso`.

Zone-less values are read in the caller's zone (a zone name or a fixed
``tzinfo``). Native temporal and numeric cells never count as carrying an
explicit zone, whatever their source, because nobody stated the zone.
"""

from __future__ import annotations

import math
import re
import warnings
from datetime import date, datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import NamedTuple, Union
from zoneinfo import ZoneInfo

import pandas as pd

from load_doctor.cells import Cell, CellKind

ZoneLike = Union[str, tzinfo]

# Spreadsheet serial day 0.
EXCEL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)
EXCEL_EPOCH_NAIVE = datetime(1899, 12, 30)
PLACEHOLDER_DAYS = frozenset({"1899-12-29", "1899-12-30", "1899-12-31"})
ISO_UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

CANONICAL_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
US_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})$")
CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?$")
CLOCK_HINT_RE = re.compile(r"\d{1,2}:\d{2}")
DATE_EVIDENCE_RE = re.compile(r"\d{4}|\d{1,2}[/-]\d{1,2}[/-]\d{2}")

ZULU_RE = re.compile(r"\dZ$")
OFFSET_RE = re.compile(
    r"\d:\d{2}(?::\d{2}(?:\.\d+)?)?\s*(?:[AaPp][Mm]\s*)?(?:UTC|GMT)?[+-]\d{2}(?::?\d{2})?$"
)
GMT_TOKEN_RE = re.compile(r"GMT([+-]\d{4})")
TRAILING_ZONE_NAME_RE = re.compile(r"\s*\([^)]*\)\s*$")
UTC_OFFSET_RE = re.compile(r"^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)


class YearMonthDay(NamedTuple):
    year: int
    month: int  # zero-based
    day: int


class HourMinuteSecond(NamedTuple):
    hour: int
    minute: int
    second: int


@lru_cache(maxsize=64)
def zone_for(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def _resolve_tz(tz: ZoneLike) -> tzinfo:
    if isinstance(tz, str):
        return zone_for(tz)
    return tz


def _local_clock(value: datetime, tz: ZoneLike) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(_resolve_tz(tz)).replace(tzinfo=None)


def _localize(local: datetime, tz: ZoneLike) -> datetime:
    return local.replace(tzinfo=_resolve_tz(tz)).astimezone(timezone.utc)


def _ymd(year: int, month: int, day: int) -> YearMonthDay | None:
    try:
        date(year, month, day)
    except ValueError:
        return None
    return YearMonthDay(year, month - 1, day)


def _hms(hour: int, minute: int, second: int) -> HourMinuteSecond | None:
    if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
        return None
    return HourMinuteSecond(hour, minute, second)


def _clean_for_parse(text: str) -> str:
    cleaned = TRAILING_ZONE_NAME_RE.sub("", text.strip())
    return GMT_TOKEN_RE.sub(r"\1", cleaned)


def _generic_parse(text: str, *, require_date: bool = True) -> datetime | None:
    cleaned = _clean_for_parse(text)
    if not cleaned:
        return None
    if require_date and not DATE_EVIDENCE_RE.search(cleaned):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(cleaned, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def is_canonical_iso(text: str) -> bool:
    return bool(CANONICAL_ISO_RE.match(text))


def _parse_canonical(text: str) -> datetime | None:
    try:
        return datetime.strptime(text, ISO_UTC_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def format_iso(instant: datetime) -> str:
    return instant.astimezone(timezone.utc).strftime(ISO_UTC_FORMAT)


def extract_date(cell: Cell, tz: ZoneLike = "UTC") -> YearMonthDay | None:
    """Calendar date of a cell, month zero-based, or ``None``."""
    if cell.kind is CellKind.TEMPORAL:
        local = _local_clock(cell.value, tz)
        return YearMonthDay(local.year, local.month - 1, local.day)

    if cell.kind is CellKind.NUMBER:
        if not math.isfinite(cell.value):
            return None
        try:
            day = EXCEL_EPOCH + timedelta(days=math.floor(cell.value))
        except OverflowError:
            return None
        return YearMonthDay(day.year, day.month - 1, day.day)

    if cell.kind is CellKind.TEXT:
        text = cell.value.strip()
        m = ISO_DATE_RE.match(text)
        if m:
            return _ymd(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = US_DATE_RE.match(text)
        if m:
            year = int(m.group(3))
            if len(m.group(3)) == 2:
                year += 2000
            return _ymd(year, int(m.group(1)), int(m.group(2)))

    return None


def extract_time(cell: Cell, tz: ZoneLike = "UTC") -> HourMinuteSecond | None:
    """Clock reading of a cell, or ``None``."""
    if cell.kind is CellKind.NUMBER:
        if not math.isfinite(cell.value):
            return None
        fraction = cell.value % 1.0
        seconds = round(fraction * 86400) % 86400
        return HourMinuteSecond(seconds // 3600, (seconds % 3600) // 60, seconds % 60)

    if cell.kind is CellKind.TEMPORAL:
        local = _local_clock(cell.value, tz)
        return HourMinuteSecond(local.hour, local.minute, local.second)

    if cell.kind is not CellKind.TEXT:
        return None

    text = cell.value.strip()
    m = CLOCK_RE.match(text)
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        second = int(m.group(3) or 0)
        meridiem = (m.group(4) or "").upper()
        if meridiem:
            if not 1 <= hour <= 12:
                return None
            if meridiem == "AM":
                hour = 0 if hour == 12 else hour
            elif hour != 12:
                hour += 12
        return _hms(hour, minute, second)

    if not CLOCK_HINT_RE.search(text):
        return None
    parsed = _generic_parse(text, require_date=False)
    if parsed is None:
        return None
    local = _local_clock(parsed, tz)
    return HourMinuteSecond(local.hour, local.minute, local.second)


def has_explicit_zone(cell: Cell) -> bool:
    if cell.kind is not CellKind.TEXT:
        return False
    text = cell.value.strip()
    if not text:
        return False
    if ZULU_RE.search(text) or OFFSET_RE.search(text):
        return True
    return bool(GMT_TOKEN_RE.search(text))


def combine(date_cell: Cell, time_cell: Cell, tz: ZoneLike = "UTC") -> datetime | None:
    """UTC instant from a date cell and a time cell; ``None`` unless both resolve."""
    ymd = extract_date(date_cell, tz)
    hms = extract_time(time_cell, tz)
    if ymd is None or hms is None:
        return None
    local = datetime(ymd.year, ymd.month + 1, ymd.day, hms.hour, hms.minute, hms.second)
    return _localize(local, tz)


def parse_instant(cell: Cell, tz: ZoneLike = "UTC") -> datetime | None:
    if cell.kind is CellKind.TEMPORAL:
        value = cell.value
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return _localize(value, tz)

    if cell.kind is CellKind.NUMBER:
        if not math.isfinite(cell.value):
            return None
        try:
            local = EXCEL_EPOCH_NAIVE + timedelta(seconds=round(cell.value * 86400))
        except OverflowError:
            return None
        return _localize(local, tz)

    if cell.kind is not CellKind.TEXT:
        return None

    text = cell.value.strip()
    if not text or CLOCK_RE.match(text):
        return None
    if is_canonical_iso(text):
        return _parse_canonical(text)

    ymd = extract_date(cell, tz)
    if ymd is not None:
        return _localize(datetime(ymd.year, ymd.month + 1, ymd.day), tz)

    parsed = _generic_parse(text)
    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        if has_explicit_zone(cell):
            return parsed.astimezone(timezone.utc)
        # Zone labels the explicit-zone check does not accept are read as local clock time.
        parsed = parsed.replace(tzinfo=None)
    return _localize(parsed, tz)


def normalize_to_iso(cell: Cell, tz: ZoneLike = "UTC") -> tuple[str | None, bool]:
    """Canonical ``YYYY-MM-DDTHH:MM:SSZ`` text and whether the fallback zone was assumed.

    Canonical input comes back unchanged, so the function is its own fixed point.
    """
    if cell.is_text and is_canonical_iso(cell.value.strip()):
        text = cell.value.strip()
        if _parse_canonical(text) is None:
            return None, False
        return text, False
    instant = parse_instant(cell, tz)
    if instant is None:
        return None, False
    return format_iso(instant), not has_explicit_zone(cell)


def is_placeholder_artifact(iso_text: str) -> bool:
    """True for instants within a day of the serial epoch (time-only cells in any zone)."""
    return iso_text[:10] in PLACEHOLDER_DAYS


def is_safe_value(cell: Cell) -> bool:
    """Canonical, explicit-zoned, or a native temporal/number cell."""
    if cell.kind in (CellKind.TEMPORAL, CellKind.NUMBER):
        return True
    if cell.kind is CellKind.TEXT:
        text = cell.value.strip()
        return is_canonical_iso(text) or has_explicit_zone(cell)
    return False


def parse_utc_offset(value: str | int) -> timezone:
    """Fixed offset from ``+HH:MM``, ``-HHMM``, ``Z`` or a number of minutes."""
    if isinstance(value, int) and not isinstance(value, bool):
        minutes = value
    else:
        text = str(value).strip()
        if text.upper() in {"Z", "UTC", "GMT"}:
            return timezone.utc
        m = UTC_OFFSET_RE.match(text)
        if not m:
            raise ValueError(f"Invalid UTC offset: {value!r}")
        hours, mins = int(m.group(2)), int(m.group(3) or 0)
        if mins >= 60:
            raise ValueError(f"Invalid UTC offset: {value!r}")
        minutes = hours * 60 + mins
        if m.group(1) == "-":
            minutes = -minutes
    if abs(minutes) > 14 * 60:
        raise ValueError(f"UTC offset out of range: {value!r}")
    return timezone(timedelta(minutes=minutes))
