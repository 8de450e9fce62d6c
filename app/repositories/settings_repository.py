"""Repository for runtime key/value settings."""
from typing import Dict, Optional

import database
from .base import BaseRepository


class SettingsRepository(BaseRepository):
    """Persists ``{key: value}`` string pairs in the ``settings`` table."""

    def get_all(self) -> Dict[str, str]:
        with self._session() as db:
            return {row.key: row.value for row in db.query(database.SettingRow).all()}

    def get(self, key: str) -> Optional[str]:
        with self._session() as db:
            row = db.get(database.SettingRow, key)
            return row.value if row else None

    def set(self, key: str, value: str, updated_by: Optional[str] = None) -> None:
        with self._session() as db:
            row = db.get(database.SettingRow, key)
            if row is None:
                db.add(database.SettingRow(key=key, value=value, updated_by=updated_by))
            else:
                row.value = value
                row.updated_by = updated_by

    def delete(self, key: str) -> bool:
        with self._session() as db:
            row = db.get(database.SettingRow, key)
            if row is None:
                return False
            db.delete(row)
            return True
