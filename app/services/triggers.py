"""Deadline triggers: announcement, cancellation deadline and reminder."""
import datetime
import enum
from typing import Optional

from ..models import Event, Scaffold
from .time_offset import is_due


class TriggerKind(enum.Enum):
    ANNOUNCEMENT = 'announcement'
    CANCELLATION = 'cancellation'
    REMINDER = 'reminder'


def deadline_notation(kind: TriggerKind, settings, event: Optional[Event] = None,
                      scaffold: Optional[Scaffold] = None) -> str:
    """Pick the notation that applies to *kind*.

    Announcement deadlines may be overridden per event, then per scaffold;
    the other kinds always use the global setting.
    """
    if kind is TriggerKind.ANNOUNCEMENT:
        if event is not None and event.announcement_deadline:
            return event.announcement_deadline
        if scaffold is not None and scaffold.announcement_deadline:
            return scaffold.announcement_deadline
        return settings.announcement_deadline()
    if kind is TriggerKind.CANCELLATION:
        return settings.cancellation_deadline()
    return settings.reminder_deadline()


def is_trigger_due(kind: TriggerKind, start: datetime.datetime, settings,
                   now: datetime.datetime, event: Optional[Event] = None,
                   scaffold: Optional[Scaffold] = None) -> bool:
    # Notation and timezone are read live, so editing a setting also moves
    # the deadlines of events that already exist.
    notation = deadline_notation(kind, settings, event=event, scaffold=scaffold)
    return is_due(notation, start, settings.timezone(), now)
