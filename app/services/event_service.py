"""Business logic for events: creation, lookups and the locked action pipeline."""
import datetime
import logging
from typing import Callable, Dict, List, Optional

from ..errors import (EventNotFound, InvalidTransition, NotFoundError,
                      PermissionDenied, ValidationError)
from ..models import ActiveEvent, DeletedEvent, Event, EventLookup, Registration
from ..repositories.event_repository import EventRepository
from ..repositories.participant_repository import ParticipantRepository
from .actions import (ALL_ACTIONS, ActionResult, AddCourt, Announce, Cancel,
                      CheckCancellationDeadline, Delete, EventAction, Finalize,
                      Join, Leave, RemoveCourt, Restore, SendReminder, Transfer,
                      UndoDelete, Unfinalize)
from .event_lock import EventLock
from .recurrence import combine_local, parse_event_date
from .settings_service import SettingsService
from .time_offset import as_utc, get_zone
from .transport import NullTransport, Transport


def format_start(start: datetime.datetime, timezone: str) -> str:
    """Render an event start like ``Sat 18 Jan 20:00`` in *timezone*."""
    local = as_utc(start).astimezone(get_zone(timezone))
    return f"{local:%a} {local.day} {local:%b %H:%M}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class EventService:
    """Creates events and runs every state-changing action under the event's lock.

    :meth:`execute` is the only way to mutate an existing event.  It acquires
    the per-event :class:`~app.services.event_lock.EventLock`, reloads the
    event inside the lock, dispatches on the action type, persists the change
    and performs the chat I/O before releasing the lock.  A handler that
    raises leaves the stored event untouched.

    State machine::

        created   --announce-->      announced --finalize--> finalized
        created   --cancel-->        cancelled
        announced --cancel-->        cancelled
        finalized --undo-finalize--> announced
        cancelled --undo-cancel-->   announced (created if never posted)
        any       --delete-->        deleted flag set, status kept
        deleted   --undo-delete-->   flag cleared
    """

    def __init__(self, events: EventRepository, participants: ParticipantRepository,
                 settings: SettingsService, transport: Optional[Transport] = None,
                 notifier=None, lock: Optional[EventLock] = None) -> None:
        self._events = events
        self._participants = participants
        self._settings = settings
        self._transport = transport or NullTransport()
        self._notifier = notifier
        self._lock = lock or EventLock()
        self._log = logging.getLogger('squashbot.events')
        self._handlers: Dict[type, Callable[[Event, EventAction], ActionResult]] = {
            Announce: self._announce,
            Join: self._join,
            Leave: self._leave,
            AddCourt: self._add_court,
            RemoveCourt: self._remove_court,
            Finalize: self._finalize,
            Unfinalize: self._unfinalize,
            Cancel: self._cancel,
            Restore: self._restore,
            Delete: self._delete,
            UndoDelete: self._undo_delete,
            Transfer: self._transfer,
            SendReminder: self._send_reminder,
            CheckCancellationDeadline: self._check_cancellation,
        }
        missing = [cls.__name__ for cls in ALL_ACTIONS if cls not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler for actions: {', '.join(missing)}")

    @property
    def lock(self) -> EventLock:
        return self._lock

    def set_transport(self, transport: Transport) -> None:
        self._transport = transport

    # ------------------------------------------------------------------
    # Queries and creation
    # ------------------------------------------------------------------

    def get_event(self, event_id: str) -> Event:
        event = self._events.find(event_id)
        if event is None:
            raise EventNotFound(event_id)
        return event

    def find_event(self, event_id: str) -> Optional[EventLookup]:
        return self._events.find_including_deleted(event_id)

    def list_events(self, include_cancelled: bool = False) -> List[Event]:
        events = self._events.list()
        if include_cancelled:
            return events
        return [e for e in events if e.status != 'cancelled']

    def registrations(self, event_id: str) -> List[Registration]:
        return self._participants.event_registrations(event_id)

    def participants(self, event_id: str) -> List[Registration]:
        """Registrations of an existing, non-deleted event."""
        self.get_event(event_id)
        return self.registrations(event_id)

    def create_event(self, day: str, time_str: str, courts: int,
                     owner_id: Optional[str] = None,
                     now: Optional[datetime.datetime] = None) -> Event:
        """Create an ad-hoc event in ``created`` status.

        Args:
            day:      ``YYYY-MM-DD``, ``today``, ``tomorrow``, ``sat`` or ``next sat``.
            time_str: ``HH:MM`` in the configured timezone.
            courts:   Number of courts (at least 1).
            owner_id: Chat user id of the owner; defaults to the admin.
        """
        if courts < 1:
            raise ValidationError("Number of courts must be a positive number")
        timezone = self._settings.timezone()
        start = combine_local(parse_event_date(day, timezone, now), time_str, timezone)
        event = self._events.create(start=start, courts=courts, status='created',
                                    owner_id=owner_id or self._settings.admin_id())
        self._log.info("Created event %s at %s", event.id, start.isoformat())
        self._notify('event_created', event_id=event.id,
                     date=format_start(event.start, timezone), courts=courts)
        return event

    # ------------------------------------------------------------------
    # Locked action pipeline
    # ------------------------------------------------------------------

    def execute(self, action: EventAction) -> ActionResult:
        """Run *action* while holding its event's exclusion lock.

        Raises:
            EventNotFound:     Unknown event id.
            InvalidTransition: Action not allowed in the current state.
            PermissionDenied:  Actor may not perform the action.
        """
        handler = self._handlers.get(type(action))
        if handler is None:
            raise TypeError(f"Unsupported action: {type(action).__name__}")
        with self._lock.hold(action.event_id):
            found = self._events.find_including_deleted(action.event_id)
            if found is None:
                raise EventNotFound(action.event_id)
            if isinstance(found, DeletedEvent) and not isinstance(action, UndoDelete):
                raise InvalidTransition(action.event_id, action.name, 'deleted')
            result = handler(found.event, action)
        self._log.debug("Action %s on %s -> %s (changed=%s)", action.name,
                        action.event_id, result.event.status, result.changed)
        return result

    # ------------------------------------------------------------------
    # Handlers (called with the event lock held)
    # ------------------------------------------------------------------

    def _announce(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'created')
        timezone = self._settings.timezone()
        message_id = self._transport.post_announcement(
            event, self.registrations(event.id), timezone)
        updated = self._events.update(event.id, status='announced',
                                      message_id=str(message_id) if message_id else None)
        self._log.info("Announced event %s (message %s)", event.id, message_id)
        self._notify('event_announced', event_id=event.id,
                     date=format_start(event.start, timezone))
        return ActionResult(updated, message=f"Event {event.id} announced")

    def _join(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'announced')
        actor = self._require_actor(action)
        participant = self._participants.find_or_create(
            actor.user_id, actor.username, actor.display_name)
        count = self._participants.add_to_event(event.id, participant.id)
        self._refresh(event)
        self._notify('participant_joined', event_id=event.id, user_name=participant.display_name)
        suffix = f" (+{count - 1})" if count > 1 else ''
        return ActionResult(event, message=f"{participant.display_name} is in{suffix}",
                            details={'participations': count})

    def _leave(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'announced')
        actor = self._require_actor(action)
        participant = self._participants.find_by_user_id(actor.user_id)
        if participant is None:
            return ActionResult(event, changed=False, message="You are not registered")
        before = {r.participant.id for r in self.registrations(event.id)}
        if participant.id not in before:
            return ActionResult(event, changed=False, message="You are not registered")
        remaining = self._participants.remove_from_event(event.id, participant.id)
        self._refresh(event)
        self._notify('participant_left', event_id=event.id, user_name=participant.display_name)
        return ActionResult(event, message=f"{participant.display_name} is out",
                            details={'participations': remaining})

    def _add_court(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'created', 'announced')
        updated = self._events.update(event.id, courts=event.courts + 1)
        self._refresh(updated)
        self._notify('court_added', event_id=event.id, courts=updated.courts)
        return ActionResult(updated, message=f"Courts: {updated.courts}")

    def _remove_court(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'created', 'announced')
        if event.courts <= 1:
            return ActionResult(event, changed=False, message="Cannot remove last court")
        updated = self._events.update(event.id, courts=event.courts - 1)
        self._refresh(updated)
        self._notify('court_removed', event_id=event.id, courts=updated.courts)
        return ActionResult(updated, message=f"Courts: {updated.courts}")

    def _finalize(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'announced')
        registrations = self.registrations(event.id)
        if not registrations:
            return ActionResult(event, changed=False, message="No participants to finalize")
        shares = self.cost_shares(event, registrations)
        updated = self._events.update(event.id, status='finalized')
        self._refresh(updated, registrations)
        timezone = self._settings.timezone()
        lines = [f"✅ Event {event.id} ({format_start(event.start, timezone)}) finalized:"]
        lines += [f"• {label}: {amount}" for label, amount in shares.items()]
        self._transport.send_message('\n'.join(lines))
        self._notify('event_finalized', event_id=event.id,
                     date=format_start(event.start, timezone),
                     participant_count=len(registrations))
        return ActionResult(updated, message=f"Event {event.id} finalized",
                            details={'shares': shares})

    def _unfinalize(self, event: Event, action: EventAction) -> ActionResult:
        if event.status == 'announced':
            return ActionResult(event, changed=False, message="Event is not finalized")
        self._require(event, action, 'finalized')
        updated = self._events.update(event.id, status='announced')
        self._refresh(updated)
        return ActionResult(updated, message=f"Event {event.id} re-opened")

    def _cancel(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'created', 'announced')
        updated = self._events.update(event.id, status='cancelled')
        timezone = self._settings.timezone()
        if event.status == 'announced':
            self._refresh(updated)
            self._transport.send_message(
                f"❌ Event {event.id} ({format_start(event.start, timezone)}) has been cancelled.")
        self._log.info("Cancelled event %s", event.id)
        self._notify('event_cancelled', event_id=event.id,
                     date=format_start(event.start, timezone))
        return ActionResult(updated, message=f"Event {event.id} cancelled")

    def _restore(self, event: Event, action: EventAction) -> ActionResult:
        self._require(event, action, 'cancelled')
        status = 'announced' if event.message_id else 'created'
        updated = self._events.update(event.id, status=status)
        if status == 'announced':
            self._refresh(updated)
        self._notify('event_restored', event_id=event.id,
                     date=format_start(event.start, self._settings.timezone()))
        return ActionResult(updated, message=f"Event {event.id} restored")

    def _delete(self, event: Event, action: EventAction) -> ActionResult:
        self._require_owner_or_admin(event, action)
        updated = self._events.update(event.id, deleted_at=_utcnow())
        self._log.info("Soft-deleted event %s (status %s kept)", event.id, event.status)
        self._notify('event_deleted', event_id=event.id)
        return ActionResult(updated, message=f"Event {event.id} deleted")

    def _undo_delete(self, event: Event, action: EventAction) -> ActionResult:
        if event.deleted_at is None:
            raise InvalidTransition(event.id, action.name, event.status)
        self._require_owner_or_admin(event, action)
        updated = self._events.update(event.id, deleted_at=None)
        self._notify('event_undeleted', event_id=event.id)
        return ActionResult(updated, message=f"Event {event.id} restored ({updated.status})")

    def _transfer(self, event: Event, action: EventAction) -> ActionResult:
        self._require_owner_or_admin(event, action)
        username = (getattr(action, 'target_username', '') or '').lstrip('@')
        target = self._participants.find_by_username(username) if username else None
        if target is None or not target.user_id:
            raise NotFoundError(
                f"User @{username} not found. They need to interact with the bot first.")
        updated = self._events.update(event.id, owner_id=target.user_id)
        self._notify('event_transferred', event_id=event.id, owner=f'@{username}')
        return ActionResult(updated, message=f"Event {event.id} transferred to @{username}")

    def _send_reminder(self, event: Event, action: EventAction) -> ActionResult:
        if event.status != 'announced' or event.reminder_sent_at is not None:
            return ActionResult(event, changed=False)
        registrations = self.registrations(event.id)
        timezone = self._settings.timezone()
        names = ', '.join(r.participant.label for r in registrations) or 'nobody yet'
        self._transport.send_message(
            f"⏰ Reminder: squash {format_start(event.start, timezone)}, "
            f"{event.courts} court(s). Playing: {names}")
        updated = self._events.update(event.id, reminder_sent_at=_utcnow())
        self._notify('reminder_sent', event_id=event.id)
        return ActionResult(updated, message=f"Reminder sent for {event.id}")

    def _check_cancellation(self, event: Event, action: EventAction) -> ActionResult:
        if event.status != 'announced' or event.cancellation_checked_at is not None:
            return ActionResult(event, changed=False)
        players = sum(r.participations for r in self.registrations(event.id))
        minimum = self._settings.min_players_per_court()
        checked = self._events.update(event.id, cancellation_checked_at=_utcnow())
        if players >= minimum:
            return ActionResult(checked, changed=False,
                                message=f"Event {event.id} has {players} player(s)")
        self._log.info("Event %s has %d player(s) at the cancellation deadline (need %d)",
                       event.id, players, minimum)
        return self._cancel(checked, action)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def cost_shares(self, event: Event, registrations: List[Registration]) -> Dict[str, int]:
        """Split ``court_price * courts`` by participations, rounded per person."""
        total_cost = self._settings.court_price() * event.courts
        total = sum(r.participations for r in registrations)
        return {
            r.participant.label: round(total_cost * r.participations / total)
            for r in registrations
        }

    @staticmethod
    def _require(event: Event, action: EventAction, *statuses: str) -> None:
        if event.status not in statuses:
            raise InvalidTransition(event.id, action.name, event.status)

    @staticmethod
    def _require_actor(action: EventAction):
        if action.actor is None:
            raise ValidationError(f"Action {action.name} needs a user")
        return action.actor

    def _require_owner_or_admin(self, event: Event, action: EventAction) -> None:
        # Actions without an actor come from the scheduler or the CLI.
        if action.actor is None:
            return
        user_id = str(action.actor.user_id)
        if user_id == str(event.owner_id) or self._settings.is_admin(user_id):
            return
        raise PermissionDenied("Only the owner or admin can do this")

    def _refresh(self, event: Event, registrations: Optional[List[Registration]] = None) -> None:
        if not event.message_id:
            return
        if registrations is None:
            registrations = self.registrations(event.id)
        self._transport.edit_announcement(event, registrations, self._settings.timezone())

    def _notify(self, kind: str, **fields) -> None:
        if self._notifier is not None:
            self._notifier.notify_event(kind, **fields)
