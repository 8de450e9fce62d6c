"""Business logic for runtime settings managed by admins."""
from typing import Dict, List, Optional

from ..errors import InvalidSetting
from ..repositories.settings_repository import SettingsRepository
from .time_offset import get_zone, parse_offset

DEFAULT_TIMEZONE = 'Europe/Belgrade'

# key -> (default, description)
SETTING_DEFAULTS = {
    'timezone': (DEFAULT_TIMEZONE, 'IANA timezone used for all civil-time calculations'),
    'announcement_deadline': ('-1d 12:00', 'When an event is announced, relative to its start'),
    'cancellation_deadline': ('-1d 23:00', 'When under-subscribed events are cancelled'),
    'reminder_deadline': ('-2h', 'When participants get a reminder'),
    'court_price': ('2000', 'Price of one court in minor currency units'),
    'min_players_per_court': ('2', 'Fewer total participations than this cancel an event'),
    'admin_id': ('', 'Chat user id with admin rights'),
    'main_channel_id': ('', 'Channel where announcements are posted'),
}

_NOTATION_KEYS = ('announcement_deadline', 'cancellation_deadline', 'reminder_deadline')
_INTEGER_KEYS = ('court_price', 'min_players_per_court')


class SettingsService:
    """Settings provider for the scheduler and the chat front-end.

    Values are read from the repository on every call, so changing a setting
    takes effect on the next evaluation without a restart.  Defaults for
    ``timezone``, ``admin_id`` and ``main_channel_id`` may be overridden from
    the configuration file via *defaults*.
    """

    def __init__(self, repository: SettingsRepository,
                 defaults: Optional[Dict[str, str]] = None) -> None:
        self._repo = repository
        self._defaults = {key: default for key, (default, _) in SETTING_DEFAULTS.items()}
        for key, value in (defaults or {}).items():
            if key in self._defaults and value not in (None, ''):
                self._defaults[key] = str(value)

    # ------------------------------------------------------------------
    # Generic access
    # ------------------------------------------------------------------

    def get(self, key: str) -> str:
        if key not in SETTING_DEFAULTS:
            raise InvalidSetting(f"Unknown setting: {key}")
        value = self._repo.get(key)
        return value if value not in (None, '') else self._defaults[key]

    def get_all(self) -> Dict[str, str]:
        stored = self._repo.get_all()
        return {key: stored.get(key) or self._defaults[key] for key in SETTING_DEFAULTS}

    def get_with_meta(self) -> List[dict]:
        """Return settings as dicts with ``key``, ``value``, ``default`` and
        ``description`` fields, for the admin settings listing."""
        current = self.get_all()
        return [
            {'key': key, 'value': current[key], 'default': self._defaults[key],
             'description': description}
            for key, (_, description) in SETTING_DEFAULTS.items()
        ]

    def set(self, key: str, value: str, updated_by: Optional[str] = None) -> str:
        """Validate and persist one setting.  Returns the normalised value."""
        if key not in SETTING_DEFAULTS:
            raise InvalidSetting(f"Unknown setting: {key}")
        value = (value or '').strip()
        if key in _NOTATION_KEYS:
            parse_offset(value)
        elif key == 'timezone':
            get_zone(value)
        elif key in _INTEGER_KEYS:
            if not value.isdigit() or int(value) < 1:
                raise InvalidSetting(f"{key} must be a positive integer")
        self._repo.set(key, value, updated_by=updated_by)
        return value

    def reset(self, key: str) -> bool:
        if key not in SETTING_DEFAULTS:
            raise InvalidSetting(f"Unknown setting: {key}")
        return self._repo.delete(key)

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def timezone(self) -> str:
        return self.get('timezone')

    def announcement_deadline(self) -> str:
        return self.get('announcement_deadline')

    def cancellation_deadline(self) -> str:
        return self.get('cancellation_deadline')

    def reminder_deadline(self) -> str:
        return self.get('reminder_deadline')

    def court_price(self) -> int:
        return self._int('court_price')

    def min_players_per_court(self) -> int:
        return self._int('min_players_per_court')

    def admin_id(self) -> Optional[str]:
        return self.get('admin_id') or None

    def main_channel_id(self) -> Optional[str]:
        return self.get('main_channel_id') or None

    def is_admin(self, user_id) -> bool:
        admin = self.admin_id()
        return admin is not None and str(user_id) == admin

    def _int(self, key: str) -> int:
        try:
            return int(self.get(key))
        except ValueError:
            return int(self._defaults[key])
