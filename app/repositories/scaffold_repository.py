"""Repository for weekly scaffolds."""
import datetime
from typing import List, Optional

import database
from ..models import Scaffold
from .base import BaseRepository, new_id

_UPDATABLE_FIELDS = ('day_of_week', 'time', 'default_courts', 'is_active',
                     'announcement_deadline', 'owner_id')


class ScaffoldRepository(BaseRepository):
    """Persists :class:`~app.models.Scaffold` values in the ``scaffolds`` table.

    Soft-deleted scaffolds are invisible to :meth:`list` and :meth:`find`;
    use :meth:`find_including_deleted` to reach them.
    """

    def list(self, include_inactive: bool = True) -> List[Scaffold]:
        with self._session() as db:
            query = db.query(database.ScaffoldRow).filter(database.ScaffoldRow.deleted_at.is_(None))
            if not include_inactive:
                query = query.filter(database.ScaffoldRow.is_active.is_(True))
            rows = query.order_by(database.ScaffoldRow.created_at).all()
            return [self._to_domain(row) for row in rows]

    def list_deleted(self) -> List[Scaffold]:
        with self._session() as db:
            rows = db.query(database.ScaffoldRow).filter(
                database.ScaffoldRow.deleted_at.isnot(None)).all()
            return [self._to_domain(row) for row in rows]

    def find(self, scaffold_id: str) -> Optional[Scaffold]:
        scaffold = self.find_including_deleted(scaffold_id)
        if scaffold is None or scaffold.deleted_at is not None:
            return None
        return scaffold

    def find_including_deleted(self, scaffold_id: str) -> Optional[Scaffold]:
        with self._session() as db:
            row = db.get(database.ScaffoldRow, scaffold_id)
            return self._to_domain(row) if row else None

    def create(self, day_of_week: str, time_str: str, default_courts: int,
               announcement_deadline: Optional[str] = None,
               owner_id: Optional[str] = None) -> Scaffold:
        with self._session() as db:
            row = database.ScaffoldRow(
                id=new_id('sc'),
                day_of_week=day_of_week,
                time=time_str,
                default_courts=default_courts,
                is_active=True,
                announcement_deadline=announcement_deadline,
                owner_id=owner_id,
            )
            db.add(row)
            db.flush()
            self._log.info("Created scaffold %s (%s %s)", row.id, day_of_week, time_str)
            return self._to_domain(row)

    def update(self, scaffold_id: str, **fields) -> Optional[Scaffold]:
        """Update allowed columns; unknown keys raise ``KeyError``."""
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise KeyError(f"Unknown scaffold fields: {', '.join(sorted(unknown))}")
        with self._session() as db:
            row = db.get(database.ScaffoldRow, scaffold_id)
            if row is None or row.deleted_at is not None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            db.flush()
            return self._to_domain(row)

    def set_deleted(self, scaffold_id: str, deleted: bool) -> Optional[Scaffold]:
        with self._session() as db:
            row = db.get(database.ScaffoldRow, scaffold_id)
            if row is None:
                return None
            row.deleted_at = datetime.datetime.now(datetime.timezone.utc) if deleted else None
            db.flush()
            return self._to_domain(row)

    @staticmethod
    def _to_domain(row) -> Scaffold:
        return Scaffold(
            id=row.id,
            day_of_week=row.day_of_week,
            time=row.time,
            default_courts=row.default_courts,
            is_active=bool(row.is_active),
            announcement_deadline=row.announcement_deadline,
            owner_id=row.owner_id,
            deleted_at=row.deleted_at,
        )
