"""Periodic pass that creates, announces, reminds and auto-cancels events."""
import datetime
import logging
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..models import Event, Scaffold, TickReport
from ..repositories.event_repository import EventRepository
from ..repositories.scaffold_repository import ScaffoldRepository
from .actions import Announce, CheckCancellationDeadline, SendReminder
from .event_service import EventService
from .occurrence_guard import already_exists
from .recurrence import next_occurrence
from .settings_service import SettingsService
from .triggers import TriggerKind, is_trigger_due


class SchedulerService:
    """Runs one scheduling pass per :meth:`tick`.

    The pass is safe to run repeatedly and concurrently with chat actions:
    event creation is guarded by :func:`already_exists` plus the database's
    unique slot index, and every state change goes through
    :meth:`EventService.execute`, which serialises work per event.
    """

    def __init__(self, scaffolds: ScaffoldRepository, events: EventRepository,
                 event_service: EventService, settings: SettingsService,
                 notifier=None) -> None:
        self._scaffolds = scaffolds
        self._events = events
        self._event_service = event_service
        self._settings = settings
        self._notifier = notifier
        self._log = logging.getLogger('squashbot.scheduler')

    def tick(self, now: Optional[datetime.datetime] = None) -> TickReport:
        """Run the three scheduling steps once and return what was done."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        report = TickReport()
        self._log.debug("Scheduler tick at %s", now.isoformat())

        self._create_from_scaffolds(now, report)
        self._announce_due(now, report)
        self._process_announced(now, report)

        if report.created or report.announced or report.reminded or report.cancelled:
            self._log.info("Tick: %s", report.to_dict())
            if self._notifier is not None:
                self._notifier.notify_event('check_completed', **report.to_dict())
        return report

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _create_from_scaffolds(self, now: datetime.datetime, report: TickReport) -> None:
        timezone = self._settings.timezone()
        existing = self._events.list()
        for scaffold in self._scaffolds.list(include_inactive=False):
            try:
                start = next_occurrence(scaffold, now, timezone)
                if already_exists(existing, scaffold.id, start):
                    continue
                if not is_trigger_due(TriggerKind.ANNOUNCEMENT, start, self._settings, now,
                                      scaffold=scaffold):
                    continue
                event = self._create_event(scaffold, start)
                if event is None:
                    report.skipped += 1
                    continue
                report.created += 1
                self._event_service.execute(Announce(event.id))
                report.announced += 1
            except Exception as exc:
                self._log.exception("Scaffold %s failed during tick", scaffold.id)
                report.errors.append(f"scaffold {scaffold.id}: {exc}")

    def _create_event(self, scaffold: Scaffold, start: datetime.datetime) -> Optional[Event]:
        try:
            event = self._events.create(start=start, courts=scaffold.default_courts,
                                        scaffold_id=scaffold.id, owner_id=scaffold.owner_id)
        except IntegrityError:
            self._log.info("Event for scaffold %s at %s already exists", scaffold.id,
                           start.isoformat())
            return None
        self._log.info("Created event %s from scaffold %s", event.id, scaffold.id)
        return event

    def _announce_due(self, now: datetime.datetime, report: TickReport) -> None:
        scaffolds: Dict[str, Optional[Scaffold]] = {}
        for event in self._events.list(statuses=['created']):
            try:
                if event.scaffold_id and event.scaffold_id not in scaffolds:
                    scaffolds[event.scaffold_id] = \
                        self._scaffolds.find_including_deleted(event.scaffold_id)
                scaffold = scaffolds.get(event.scaffold_id) if event.scaffold_id else None
                if not is_trigger_due(TriggerKind.ANNOUNCEMENT, event.start, self._settings,
                                      now, event=event, scaffold=scaffold):
                    continue
                self._event_service.execute(Announce(event.id))
                report.announced += 1
            except Exception as exc:
                self._log.exception("Announcing event %s failed", event.id)
                report.errors.append(f"event {event.id}: {exc}")

    def _process_announced(self, now: datetime.datetime, report: TickReport) -> None:
        for event in self._events.list(statuses=['announced']):
            try:
                if is_trigger_due(TriggerKind.CANCELLATION, event.start, self._settings, now):
                    result = self._event_service.execute(CheckCancellationDeadline(event.id))
                    if result.changed and result.event.status == 'cancelled':
                        report.cancelled += 1
                        continue
                if is_trigger_due(TriggerKind.REMINDER, event.start, self._settings, now):
                    if self._event_service.execute(SendReminder(event.id)).changed:
                        report.reminded += 1
            except Exception as exc:
                self._log.exception("Deadline processing for event %s failed", event.id)
                report.errors.append(f"event {event.id}: {exc}")
