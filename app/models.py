"""Domain value objects passed between repositories and services.

Repositories never hand out ORM rows; they convert them into these frozen
dataclasses so that callers cannot accidentally keep a live, stale copy of a
record across operations.
"""
import datetime
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

DAYS_OF_WEEK = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

EVENT_STATUSES = ('created', 'announced', 'finalized', 'cancelled')


@dataclass(frozen=True)
class ParsedOffset:
    """A parsed deadline notation such as ``-1d 12:00`` or ``-24h``.

    Exactly one of ``days``/``hours`` is set and already negative, so it reads
    as "add this to the reference".  ``time_of_day`` is ``(hour, minute)``.
    """
    days: Optional[int] = None
    hours: Optional[int] = None
    time_of_day: Optional[Tuple[int, int]] = None


@dataclass(frozen=True)
class Scaffold:
    id: str
    day_of_week: str
    time: str
    default_courts: int
    is_active: bool = True
    announcement_deadline: Optional[str] = None
    owner_id: Optional[str] = None
    deleted_at: Optional[datetime.datetime] = None


@dataclass(frozen=True)
class Event:
    id: str
    start: datetime.datetime
    courts: int
    status: str = 'created'
    scaffold_id: Optional[str] = None
    message_id: Optional[str] = None
    announcement_deadline: Optional[str] = None
    owner_id: Optional[str] = None
    deleted_at: Optional[datetime.datetime] = None
    reminder_sent_at: Optional[datetime.datetime] = None
    cancellation_checked_at: Optional[datetime.datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class Participant:
    id: str
    display_name: str
    user_id: Optional[str] = None
    username: Optional[str] = None

    @property
    def label(self) -> str:
        return f'@{self.username}' if self.username else self.display_name


@dataclass(frozen=True)
class Registration:
    """A participant's entry on one event; ``participations`` counts guests."""
    participant: Participant
    participations: int = 1


@dataclass(frozen=True)
class ActiveEvent:
    event: Event


@dataclass(frozen=True)
class DeletedEvent:
    event: Event
    deleted_at: datetime.datetime


EventLookup = Union[ActiveEvent, DeletedEvent]


@dataclass
class TickReport:
    """Counters returned by one scheduler pass."""
    created: int = 0
    announced: int = 0
    reminded: int = 0
    cancelled: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'created': self.created,
            'announced': self.announced,
            'reminded': self.reminded,
            'cancelled': self.cancelled,
            'skipped': self.skipped,
            'errors': list(self.errors),
        }
