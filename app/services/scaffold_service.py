"""Business logic for weekly scaffolds (recurring session templates)."""
import logging
from typing import List, Optional

from ..errors import PermissionDenied, ScaffoldNotFound, ValidationError
from ..models import Scaffold
from ..repositories.scaffold_repository import ScaffoldRepository
from .recurrence import parse_day_of_week, parse_time_of_day
from .settings_service import SettingsService
from .time_offset import parse_offset


class ScaffoldService:
    """Creates and administers scaffolds, delegating persistence to
    :class:`~app.repositories.scaffold_repository.ScaffoldRepository`.

    Administrative calls take an ``actor_id``; when it is given it must be the
    admin or the scaffold's owner.  ``None`` means the call comes from the
    operator (CLI) and is always allowed.
    """

    def __init__(self, repository: ScaffoldRepository, settings: SettingsService,
                 notifier=None) -> None:
        self._repo = repository
        self._settings = settings
        self._notifier = notifier
        self._log = logging.getLogger('squashbot.scaffolds')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, day: str, time_str: str, courts: int,
               announcement_deadline: Optional[str] = None,
               owner_id: Optional[str] = None) -> Scaffold:
        """Create an active scaffold.

        Args:
            day:      Day of week, e.g. ``"Tue"`` or ``"tuesday"``.
            time_str: ``HH:MM`` in the configured timezone.
            courts:   Default number of courts (at least 1).
            announcement_deadline: Optional notation overriding the global
                announcement deadline for this scaffold's events.
            owner_id: Chat user id of the owner; defaults to the admin.

        Raises:
            ValidationError: On a bad day, time, court count or notation.
        """
        day_of_week = parse_day_of_week(day)
        hour, minute = parse_time_of_day(time_str)
        self._check_courts(courts)
        if announcement_deadline:
            parse_offset(announcement_deadline)
        scaffold = self._repo.create(
            day_of_week, f'{hour:02d}:{minute:02d}', courts,
            announcement_deadline=announcement_deadline or None,
            owner_id=owner_id or self._settings.admin_id())
        self._notify('scaffold_created', day=day_of_week, time=scaffold.time, courts=courts)
        return scaffold

    def get(self, scaffold_id: str) -> Scaffold:
        scaffold = self._repo.find(scaffold_id)
        if scaffold is None:
            raise ScaffoldNotFound(scaffold_id)
        return scaffold

    def list(self, include_inactive: bool = True) -> List[Scaffold]:
        return self._repo.list(include_inactive=include_inactive)

    def list_deleted(self) -> List[Scaffold]:
        return self._repo.list_deleted()

    def set_active(self, scaffold_id: str, active: bool,
                   actor_id: Optional[str] = None) -> Scaffold:
        self._authorize(self.get(scaffold_id), actor_id)
        scaffold = self._repo.update(scaffold_id, is_active=active)
        self._notify('scaffold_toggled', scaffold_id=scaffold_id,
                     state='active' if active else 'inactive')
        return scaffold

    def toggle(self, scaffold_id: str, actor_id: Optional[str] = None) -> Scaffold:
        return self.set_active(scaffold_id, not self.get(scaffold_id).is_active, actor_id)

    def update(self, scaffold_id: str, day: Optional[str] = None,
               time_str: Optional[str] = None, courts: Optional[int] = None,
               actor_id: Optional[str] = None) -> Scaffold:
        """Change day, time and/or default courts.  Omitted values are kept."""
        self._authorize(self.get(scaffold_id), actor_id)
        fields = {}
        if day is not None:
            fields['day_of_week'] = parse_day_of_week(day)
        if time_str is not None:
            hour, minute = parse_time_of_day(time_str)
            fields['time'] = f'{hour:02d}:{minute:02d}'
        if courts is not None:
            self._check_courts(courts)
            fields['default_courts'] = courts
        if not fields:
            return self.get(scaffold_id)
        self._log.info("Updating scaffold %s: %s", scaffold_id, fields)
        return self._repo.update(scaffold_id, **fields)

    def set_announcement_deadline(self, scaffold_id: str, notation: Optional[str],
                                  actor_id: Optional[str] = None) -> Scaffold:
        """Set a per-scaffold announcement deadline, or clear it with ``None``."""
        self._authorize(self.get(scaffold_id), actor_id)
        if notation:
            parse_offset(notation)
        return self._repo.update(scaffold_id, announcement_deadline=notation or None)

    def transfer_owner(self, scaffold_id: str, new_owner_id: str,
                       actor_id: Optional[str] = None) -> Scaffold:
        self._authorize(self.get(scaffold_id), actor_id)
        if not new_owner_id:
            raise ValidationError("New owner is required")
        return self._repo.update(scaffold_id, owner_id=str(new_owner_id))

    def remove(self, scaffold_id: str, actor_id: Optional[str] = None) -> Scaffold:
        """Soft-delete a scaffold; its events are left alone."""
        self._authorize(self.get(scaffold_id), actor_id)
        scaffold = self._repo.set_deleted(scaffold_id, True)
        self._notify('scaffold_removed', scaffold_id=scaffold_id)
        return scaffold

    def restore(self, scaffold_id: str, actor_id: Optional[str] = None) -> Scaffold:
        scaffold = self._repo.find_including_deleted(scaffold_id)
        if scaffold is None:
            raise ScaffoldNotFound(scaffold_id)
        self._authorize(scaffold, actor_id)
        return self._repo.set_deleted(scaffold_id, False)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_courts(courts: int) -> None:
        if not isinstance(courts, int) or courts < 1:
            raise ValidationError("Number of courts must be a positive number")

    def _authorize(self, scaffold: Scaffold, actor_id: Optional[str]) -> None:
        if actor_id is None:
            return
        if self._settings.is_admin(actor_id) or str(actor_id) == str(scaffold.owner_id):
            return
        raise PermissionDenied("Only the owner or admin can do this")

    def _notify(self, kind: str, **fields) -> None:
        if self._notifier is not None:
            self._notifier.notify_event(kind, **fields)
