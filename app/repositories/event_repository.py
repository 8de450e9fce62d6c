"""Repository for scheduled events."""
import datetime
from typing import Iterable, List, Optional

import database
from ..errors import EventNotFound
from ..models import EVENT_STATUSES, ActiveEvent, DeletedEvent, Event, EventLookup
from .base import BaseRepository, new_id

_UPDATABLE_FIELDS = ('status', 'courts', 'message_id', 'announcement_deadline',
                     'owner_id', 'deleted_at', 'reminder_sent_at',
                     'cancellation_checked_at')


class EventRepository(BaseRepository):
    """Persists :class:`~app.models.Event` values in the ``events`` table.

    :meth:`create` lets ``sqlalchemy.exc.IntegrityError`` escape when a live
    event already occupies the same ``(scaffold_id, start)`` slot; the
    scheduler treats that as "already exists".
    """

    def list(self, include_deleted: bool = False,
             statuses: Optional[Iterable[str]] = None) -> List[Event]:
        with self._session() as db:
            query = db.query(database.EventRow)
            if not include_deleted:
                query = query.filter(database.EventRow.deleted_at.is_(None))
            if statuses is not None:
                query = query.filter(database.EventRow.status.in_(list(statuses)))
            rows = query.order_by(database.EventRow.start).all()
            return [self._to_domain(row) for row in rows]

    def find(self, event_id: str) -> Optional[Event]:
        """Return the event unless it is missing or soft-deleted."""
        found = self.find_including_deleted(event_id)
        return found.event if isinstance(found, ActiveEvent) else None

    def find_including_deleted(self, event_id: str) -> Optional[EventLookup]:
        with self._session() as db:
            row = db.get(database.EventRow, event_id)
            if row is None:
                return None
            event = self._to_domain(row)
            if event.deleted_at is not None:
                return DeletedEvent(event=event, deleted_at=event.deleted_at)
            return ActiveEvent(event=event)

    def create(self, start: datetime.datetime, courts: int, status: str = 'created',
               scaffold_id: Optional[str] = None, owner_id: Optional[str] = None,
               announcement_deadline: Optional[str] = None) -> Event:
        if status not in EVENT_STATUSES:
            raise ValueError(f"Invalid status: {status}. Valid values: {', '.join(EVENT_STATUSES)}")
        with self._session() as db:
            row = database.EventRow(
                id=new_id('ev'),
                scaffold_id=scaffold_id,
                start=start,
                courts=courts,
                status=status,
                owner_id=owner_id,
                announcement_deadline=announcement_deadline,
            )
            db.add(row)
            db.flush()
            return self._to_domain(row)

    def update(self, event_id: str, **fields) -> Event:
        """Write *fields* and return the stored event.

        Raises:
            EventNotFound: No row with *event_id*.
            KeyError:      A field that may not be updated.
            ValueError:    An unknown status.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise KeyError(f"Unknown event fields: {', '.join(sorted(unknown))}")
        if 'status' in fields and fields['status'] not in EVENT_STATUSES:
            raise ValueError(f"Invalid status: {fields['status']}")
        with self._session() as db:
            row = db.get(database.EventRow, event_id)
            if row is None:
                raise EventNotFound(event_id)
            for key, value in fields.items():
                setattr(row, key, value)
            db.flush()
            return self._to_domain(row)

    @staticmethod
    def _to_domain(row) -> Event:
        return Event(
            id=row.id,
            scaffold_id=row.scaffold_id,
            start=row.start,
            courts=row.courts,
            status=row.status,
            message_id=row.message_id,
            announcement_deadline=row.announcement_deadline,
            owner_id=row.owner_id,
            deleted_at=row.deleted_at,
            reminder_sent_at=row.reminder_sent_at,
            cancellation_checked_at=row.cancellation_checked_at,
        )
