"""Repository package: expose all concrete repositories from one import."""
from .scaffold_repository import ScaffoldRepository
from .event_repository import EventRepository
from .participant_repository import ParticipantRepository
from .settings_repository import SettingsRepository

__all__ = [
    'ScaffoldRepository',
    'EventRepository',
    'ParticipantRepository',
    'SettingsRepository',
]
