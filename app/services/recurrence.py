"""Weekly recurrence and ad-hoc date parsing."""
import datetime
import re
from typing import Optional, Tuple

from ..errors import InvalidDayOfWeek, InvalidEventDate, InvalidTimeOfDay
from ..models import DAYS_OF_WEEK, Scaffold
from .time_offset import as_utc, get_zone

_DAY_NAMES = {
    'mon': 'Mon', 'monday': 'Mon',
    'tue': 'Tue', 'tuesday': 'Tue',
    'wed': 'Wed', 'wednesday': 'Wed',
    'thu': 'Thu', 'thursday': 'Thu',
    'fri': 'Fri', 'friday': 'Fri',
    'sat': 'Sat', 'saturday': 'Sat',
    'sun': 'Sun', 'sunday': 'Sun',
}

_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})$')
_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def parse_day_of_week(text: str) -> str:
    """Normalise a day name (``"mon"``, ``"Monday"``, ``"SAT"``) to ``Mon``..``Sun``."""
    day = _DAY_NAMES.get((text or '').strip().lower())
    if day is None:
        raise InvalidDayOfWeek(
            f"Invalid day of week: {text!r}. Valid values: {', '.join(DAYS_OF_WEEK)}"
        )
    return day


def parse_time_of_day(text: str) -> Tuple[int, int]:
    """Parse ``HH:MM`` into ``(hour, minute)``."""
    match = _TIME_RE.match((text or '').strip())
    if not match:
        raise InvalidTimeOfDay(f"Invalid time {text!r}, expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeOfDay(f"Invalid time {text!r}, expected HH:MM")
    return hour, minute


def next_occurrence(scaffold: Scaffold, now: datetime.datetime,
                    timezone: str) -> datetime.datetime:
    """Return the first instant at or after *now* that falls on the scaffold's slot.

    The search is inclusive: when *now* is exactly on this week's slot the
    same instant is returned.  The result is an aware datetime in *timezone*.
    """
    weekday = DAYS_OF_WEEK.index(parse_day_of_week(scaffold.day_of_week))
    hour, minute = parse_time_of_day(scaffold.time)
    zone = get_zone(timezone)

    local_now = as_utc(now).astimezone(zone)
    days_until = (weekday - local_now.weekday()) % 7
    candidate = _at_local_time(local_now.date() + datetime.timedelta(days=days_until),
                               hour, minute, zone)
    if candidate < local_now:
        candidate = _at_local_time(candidate.date() + datetime.timedelta(days=7),
                                   hour, minute, zone)
    return candidate


def _at_local_time(day: datetime.date, hour: int, minute: int, zone) -> datetime.datetime:
    naive = datetime.datetime.combine(day, datetime.time(hour, minute))
    # Round-trip through UTC so a wall time inside a DST gap is normalised.
    return naive.replace(tzinfo=zone).astimezone(datetime.timezone.utc).astimezone(zone)


def parse_event_date(text: str, timezone: str,
                     now: Optional[datetime.datetime] = None) -> datetime.date:
    """Parse the date part of an ad-hoc event.

    Accepts ``YYYY-MM-DD``, ``today``, ``tomorrow``, a day name (the next such
    day, never today) and ``next <day>`` (one week after that).
    """
    zone = get_zone(timezone)
    today = as_utc(now or datetime.datetime.now(datetime.timezone.utc)).astimezone(zone).date()
    normalized = (text or '').strip().lower()

    if _ISO_DATE_RE.match(normalized):
        try:
            return datetime.date.fromisoformat(normalized)
        except ValueError as exc:
            raise InvalidEventDate(f"Unable to parse date: {text!r}") from exc
    if normalized == 'today':
        return today
    if normalized == 'tomorrow':
        return today + datetime.timedelta(days=1)

    next_week = normalized.startswith('next ')
    if next_week:
        normalized = normalized[5:].strip()
    if normalized in _DAY_NAMES:
        days_until = DAYS_OF_WEEK.index(_DAY_NAMES[normalized]) - today.weekday()
        # "sat" is the coming Saturday; "next sat" is the one in next week.
        if next_week or days_until <= 0:
            days_until += 7
        return today + datetime.timedelta(days=days_until)

    raise InvalidEventDate(f"Unable to parse date: {text!r}")


def combine_local(day: datetime.date, time_text: str, timezone: str) -> datetime.datetime:
    """Build an aware start instant from a civil date and ``HH:MM``."""
    hour, minute = parse_time_of_day(time_text)
    return _at_local_time(day, hour, minute, get_zone(timezone))
