"""Repository for participants and their event registrations."""
from typing import List, Optional

import database
from ..models import Participant, Registration
from .base import BaseRepository, new_id


class ParticipantRepository(BaseRepository):
    """Persists chat users and the ``event_participants`` join table.

    A registration's ``participations`` counter grows by one on every join
    (the user brings a guest) and shrinks by one on every leave; the row is
    removed when it reaches zero.
    """

    def find_by_user_id(self, user_id: str) -> Optional[Participant]:
        with self._session() as db:
            row = db.query(database.ParticipantRow).filter(
                database.ParticipantRow.user_id == str(user_id)).first()
            return self._to_domain(row) if row else None

    def find_by_username(self, username: str) -> Optional[Participant]:
        with self._session() as db:
            row = db.query(database.ParticipantRow).filter(
                database.ParticipantRow.username == username.lstrip('@')).first()
            return self._to_domain(row) if row else None

    def find_or_create(self, user_id: str, username: Optional[str] = None,
                       display_name: Optional[str] = None) -> Participant:
        with self._session() as db:
            row = db.query(database.ParticipantRow).filter(
                database.ParticipantRow.user_id == str(user_id)).first()
            if row is None:
                row = database.ParticipantRow(
                    id=new_id('pt'),
                    user_id=str(user_id),
                    username=username,
                    display_name=display_name or username or f'User {user_id}',
                )
                db.add(row)
            elif username and row.username != username:
                row.username = username
            db.flush()
            return self._to_domain(row)

    def add_to_event(self, event_id: str, participant_id: str, participations: int = 1) -> int:
        """Register (or add a guest for) a participant.  Returns the new count."""
        with self._session() as db:
            row = self._registration(db, event_id, participant_id)
            if row is None:
                row = database.EventParticipantRow(
                    event_id=event_id, participant_id=participant_id,
                    participations=participations,
                )
                db.add(row)
            else:
                row.participations += participations
            db.flush()
            return row.participations

    def remove_from_event(self, event_id: str, participant_id: str) -> int:
        """Drop one participation.  Returns the remaining count (0 if gone)."""
        with self._session() as db:
            row = self._registration(db, event_id, participant_id)
            if row is None:
                return 0
            row.participations -= 1
            remaining = row.participations
            if remaining <= 0:
                db.delete(row)
                remaining = 0
            return remaining

    def event_registrations(self, event_id: str) -> List[Registration]:
        with self._session() as db:
            rows = db.query(database.EventParticipantRow).filter(
                database.EventParticipantRow.event_id == event_id,
            ).order_by(database.EventParticipantRow.id).all()
            return [
                Registration(participant=self._to_domain(row.participant),
                             participations=row.participations)
                for row in rows
            ]

    @staticmethod
    def _registration(db, event_id: str, participant_id: str):
        return db.query(database.EventParticipantRow).filter(
            database.EventParticipantRow.event_id == event_id,
            database.EventParticipantRow.participant_id == participant_id,
        ).first()

    @staticmethod
    def _to_domain(row) -> Participant:
        return Participant(
            id=row.id,
            user_id=row.user_id,
            username=row.username,
            display_name=row.display_name,
        )
