"""Idempotence check for scheduled event creation."""
import datetime
from typing import Iterable

from ..models import Event
from .time_offset import as_utc


def already_exists(events: Iterable[Event], scaffold_id: str,
                   candidate: datetime.datetime) -> bool:
    """Return ``True`` if a live event for *scaffold_id* starts exactly at *candidate*.

    Soft-deleted events do not count.  The comparison is exact at the storage
    granularity; a start one second away is a different occurrence.
    """
    wanted = as_utc(candidate)
    return any(
        event.scaffold_id == scaffold_id
        and not event.is_deleted
        and as_utc(event.start) == wanted
        for event in events
    )
