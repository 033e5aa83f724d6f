"""Timestamp parsing and formatting.

Feeds carry dates in a handful of layouts. ``parse_timestamp`` walks
``TIMESTAMP_GRAMMARS`` in order and keeps the first result; when nothing
matches it returns ``EPOCH`` instead of raising.
"""

from __future__ import annotations

import datetime
import logging
import re
from email.utils import format_datetime
from functools import lru_cache, partial
from typing import Callable, Mapping, Optional

from dateutil import parser as dateutil_parser

from .models import EPOCH

_log = logging.getLogger(__name__)

_UTC = datetime.timezone.utc

_MONTHS_ABBR: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}
_MONTHS_FULL: dict[str, int] = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}
_WEEKDAYS_ABBR = frozenset({"mon", "tue", "wed", "thu", "fri", "sat", "sun"})
_WEEKDAYS_FULL = frozenset(
    {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
)

# Offsets in seconds. Abbreviations missing here are read as UTC.
_NAMED_ZONES: dict[str, int] = {
    "UTC": 0,
    "UT": 0,
    "GMT": 0,
    "Z": 0,
    "WET": 0,
    "WEST": 3600,
    "BST": 3600,
    "CET": 3600,
    "CEST": 7200,
    "EET": 7200,
    "EEST": 10800,
    "MSK": 10800,
    "IST": 19800,
    "PST": -28800,
    "PDT": -25200,
    "MST": -25200,
    "MDT": -21600,
    "CST": -21600,
    "CDT": -18000,
    "EST": -18000,
    "EDT": -14400,
    "AKST": -32400,
    "AKDT": -28800,
    "HST": -36000,
    "AEST": 36000,
    "AEDT": 39600,
    "ACST": 34200,
    "ACDT": 37800,
    "AWST": 28800,
    "NZST": 43200,
    "NZDT": 46800,
    "JST": 32400,
    "KST": 32400,
    "SGT": 28800,
}

_NAMED_TZ = r"(?P<tz>[A-Za-z]{1,5})"
_NUMERIC_TZ = r"(?P<tz>[+-]\d{4})"
_ANY_TZ = r"(?P<tz>[+-]\d{4}|[A-Za-z]{1,5})"

# Sat, 29 Jun 2013 18:20:00 GMT
_RE_RFC1123 = re.compile(
    r"(?P<weekday>[A-Za-z]{3}),\s+(?P<day>\d{2})\s+(?P<month>[A-Za-z]{3})\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2})\s+"
    + _NAMED_TZ
)
# Sun, 30 Jun 2013 21:26:26 +0000
_RE_RFC1123Z = re.compile(
    r"(?P<weekday>[A-Za-z]{3}),\s+(?P<day>\d{2})\s+(?P<month>[A-Za-z]{3})\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2})\s+"
    + _NUMERIC_TZ
)
# 2015-03-03T21:29:00+00:00
_RE_RFC3339 = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{1,9})?(?:Z|[+-]\d{2}:\d{2})"
)
_RE_ISO_FRACTION = re.compile(r"\.(\d{7,})")
# Monday, January 2, 2006 15:04:05 MST
_RE_LONG_COMMA = re.compile(
    r"(?P<weekday>[A-Za-z]+),\s+(?P<month>[A-Za-z]+)\s+(?P<day>\d{1,2}),\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2})\s+"
    + _ANY_TZ
)
# Monday, January 2, 2006 15:04 MST
_RE_LONG_COMMA_NO_SECONDS = re.compile(
    r"(?P<weekday>[A-Za-z]+),\s+(?P<month>[A-Za-z]+)\s+(?P<day>\d{1,2}),\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})\s+" + _ANY_TZ
)
# Monday, January 2 2006 15:04:05 MST
_RE_LONG = re.compile(
    r"(?P<weekday>[A-Za-z]+),\s+(?P<month>[A-Za-z]+)\s+(?P<day>\d{1,2})\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2})\s+"
    + _ANY_TZ
)
# Monday, January 2 2006 15:04 MST
_RE_LONG_NO_SECONDS = re.compile(
    r"(?P<weekday>[A-Za-z]+),\s+(?P<month>[A-Za-z]+)\s+(?P<day>\d{1,2})\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})\s+" + _ANY_TZ
)
# Sun, 09 Apr 2017 05:06 GMT
_RE_RFC1123_NO_SECONDS = re.compile(
    r"(?P<weekday>[A-Za-z]{3}),\s+(?P<day>\d{2})\s+(?P<month>[A-Za-z]{3})\s+"
    r"(?P<year>\d{4})\s+(?P<hour>\d{2}):(?P<minute>\d{2})\s+" + _NAMED_TZ
)


def _fixed_zone(offset: datetime.timedelta) -> datetime.tzinfo:
    if not offset:
        return _UTC
    return datetime.timezone(offset)


def _parse_zone(value: str) -> Optional[datetime.tzinfo]:
    if value[0] in "+-":
        hours, minutes = int(value[1:3]), int(value[3:5])
        if hours > 23 or minutes > 59:
            return None
        offset = datetime.timedelta(hours=hours, minutes=minutes)
        return _fixed_zone(-offset if value[0] == "-" else offset)
    seconds = _NAMED_ZONES.get(value.upper(), 0)
    return _fixed_zone(datetime.timedelta(seconds=seconds))


def _parse_layout(
    pattern: re.Pattern[str],
    months: Mapping[str, int],
    weekdays: frozenset[str],
    value: str,
) -> Optional[datetime.datetime]:
    match = pattern.fullmatch(value)
    if match is None:
        return None
    if match.group("weekday").lower() not in weekdays:
        return None
    month = months.get(match.group("month").lower())
    if month is None:
        return None
    tzinfo = _parse_zone(match.group("tz"))
    if tzinfo is None:
        return None

    second = match.groupdict().get("second") or "0"
    try:
        return datetime.datetime(
            int(match.group("year")),
            month,
            int(match.group("day")),
            int(match.group("hour")),
            int(match.group("minute")),
            int(second),
            tzinfo=tzinfo,
        )
    except ValueError:
        return None


def _parse_rfc3339(value: str) -> Optional[datetime.datetime]:
    if _RE_RFC3339.fullmatch(value) is None:
        return None
    # isoparse handles at most microseconds
    value = _RE_ISO_FRACTION.sub(lambda m: "." + m.group(1)[:6], value, count=1)
    try:
        dt = dateutil_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    offset = dt.utcoffset()
    if offset is None:
        return None
    return dt.replace(tzinfo=_fixed_zone(offset))


_TimestampParser = Callable[[str], Optional[datetime.datetime]]

TIMESTAMP_GRAMMARS: tuple[tuple[str, _TimestampParser], ...] = (
    ("rfc1123", partial(_parse_layout, _RE_RFC1123, _MONTHS_ABBR, _WEEKDAYS_ABBR)),
    ("rfc1123z", partial(_parse_layout, _RE_RFC1123Z, _MONTHS_ABBR, _WEEKDAYS_ABBR)),
    ("rfc3339", _parse_rfc3339),
    ("long", partial(_parse_layout, _RE_LONG_COMMA, _MONTHS_FULL, _WEEKDAYS_FULL)),
    (
        "long-no-seconds",
        partial(_parse_layout, _RE_LONG_COMMA_NO_SECONDS, _MONTHS_FULL, _WEEKDAYS_FULL),
    ),
    ("long-no-comma", partial(_parse_layout, _RE_LONG, _MONTHS_FULL, _WEEKDAYS_FULL)),
    (
        "long-no-comma-no-seconds",
        partial(_parse_layout, _RE_LONG_NO_SECONDS, _MONTHS_FULL, _WEEKDAYS_FULL),
    ),
    (
        "rfc1123-no-seconds",
        partial(_parse_layout, _RE_RFC1123_NO_SECONDS, _MONTHS_ABBR, _WEEKDAYS_ABBR),
    ),
)


@lru_cache(maxsize=8192)
def _match_timestamp(candidate: str) -> Optional[datetime.datetime]:
    for _name, parser in TIMESTAMP_GRAMMARS:
        dt = parser(candidate)
        if dt is not None:
            return dt
    return None


def parse_timestamp(value: Optional[str], *, verbose: bool = False) -> datetime.datetime:
    """Parse a feed date, falling back to ``EPOCH``.

    The returned datetime is always timezone-aware and keeps the offset the
    source declared. This function never raises.
    """
    candidate = value.strip() if value else ""
    if not candidate:
        if verbose:
            _log.info("No pub date given - using default %s", EPOCH.isoformat())
        return EPOCH

    dt = _match_timestamp(candidate)
    if dt is None:
        if verbose:
            _log.info(
                "No format worked for date [%s] - using default %s",
                candidate,
                EPOCH.isoformat(),
            )
        return EPOCH
    return dt


def format_timestamp(dt: datetime.datetime) -> str:
    """Format ``dt`` as ``Sun, 25 Dec 2016 11:00:00 +0000``."""
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValueError(f"Cannot format naive datetime {dt.isoformat()}")
    return format_datetime(dt)
