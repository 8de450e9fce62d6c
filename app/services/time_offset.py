"""Deadline notation: parsing and evaluation against an event start time.

A notation describes a moment *before* a reference instant::

    -1d 12:00   one civil day earlier, clock set to 12:00 local time
    -2d         two civil days earlier, same wall-clock time
    -24h        exactly 24 hours earlier
    -3h 09:00   three hours earlier, then clock set to 09:00 local time

Day offsets move the civil (wall-clock) date in the configured timezone, so
"-1d" keeps the local time across a daylight-saving change.  Hour offsets are
plain durations.  An absolute ``HH:MM`` replaces the local hour and minute of
the shifted time; it is not added as a further offset.
"""
import datetime
import re
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import InvalidNotation, InvalidSetting, InvalidTimeOfDay
from ..models import ParsedOffset

_NOTATION_RE = re.compile(r'^-(\d+)([dh])(?:\s+(\d+):(\d+))?$')

# Offsets beyond ten years are rejected at parse time.
MAX_OFFSET_DAYS = 3650
MAX_OFFSET_HOURS = MAX_OFFSET_DAYS * 24

Notation = Union[str, ParsedOffset]


def parse_offset(notation: str) -> ParsedOffset:
    """Parse *notation* into a :class:`~app.models.ParsedOffset`.

    Raises:
        InvalidNotation:  The text does not match ``-<n>d|h [HH:MM]`` or the
                          offset exceeds ten years.
        InvalidTimeOfDay: The trailing ``HH:MM`` is malformed or out of range.
    """
    if not isinstance(notation, str):
        raise InvalidNotation(f"Invalid offset notation: {notation!r}")
    match = _NOTATION_RE.match(notation.strip())
    if not match:
        raise InvalidNotation(f"Invalid offset notation: {notation!r}")

    value, unit, hours, minutes = match.groups()
    limit = MAX_OFFSET_DAYS if unit == 'd' else MAX_OFFSET_HOURS
    if int(value) > limit:
        raise InvalidNotation(f"Offset too large in {notation!r} (at most {limit}{unit})")
    magnitude = -int(value)

    time_of_day = None
    if hours is not None:
        if len(hours) > 2 or len(minutes) != 2:
            raise InvalidTimeOfDay(f"Invalid time in notation: {notation!r}")
        h, m = int(hours), int(minutes)
        if not (0 <= h <= 23 and 0 <= m <= 59):
            raise InvalidTimeOfDay(f"Invalid time in notation: {notation!r}")
        time_of_day = (h, m)

    if unit == 'd':
        return ParsedOffset(days=magnitude, time_of_day=time_of_day)
    return ParsedOffset(hours=magnitude, time_of_day=time_of_day)


def get_zone(timezone: str) -> ZoneInfo:
    """Return the :class:`ZoneInfo` for *timezone* or raise ``InvalidSetting``."""
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidSetting(f"Unknown timezone: {timezone!r}") from exc


def as_utc(moment: datetime.datetime) -> datetime.datetime:
    """Normalise *moment* to an aware UTC datetime (naive values are UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc)


def compute_target_instant(notation: Notation, reference: datetime.datetime,
                           timezone: str) -> datetime.datetime:
    """Return the UTC instant that *notation* designates relative to *reference*.

    Args:
        notation:  Notation string or an already parsed offset.
        reference: The event start (aware; naive values are taken as UTC).
        timezone:  IANA zone name used for civil-time arithmetic.
    """
    parsed = notation if isinstance(notation, ParsedOffset) else parse_offset(notation)
    zone = get_zone(timezone)
    ref_utc = as_utc(reference)

    if parsed.hours is not None:
        shifted = ref_utc + datetime.timedelta(hours=parsed.hours)
        if parsed.time_of_day is None:
            return shifted
        civil = shifted.astimezone(zone).replace(tzinfo=None)
    else:
        civil = ref_utc.astimezone(zone).replace(tzinfo=None)
        civil += datetime.timedelta(days=parsed.days)

    if parsed.time_of_day is not None:
        hour, minute = parsed.time_of_day
        civil = civil.replace(hour=hour, minute=minute, second=0, microsecond=0)

    return civil.replace(tzinfo=zone).astimezone(datetime.timezone.utc)


def is_due(notation: Notation, reference: datetime.datetime, timezone: str,
           now: datetime.datetime) -> bool:
    """Return ``True`` once *now* has reached the deadline before *reference*.

    Always ``False`` after *reference* itself has passed.  The predicate has no
    memory: callers that must act only once record that themselves.
    """
    ref_utc = as_utc(reference)
    now_utc = as_utc(now)
    if ref_utc < now_utc:
        return False
    return now_utc >= compute_target_instant(notation, ref_utc, timezone)
