"""Services package: expose all concrete services from one import."""
from .settings_service import SettingsService
from .event_lock import EventLock
from .event_service import EventService
from .scaffold_service import ScaffoldService
from .scheduler_service import SchedulerService
from .transport import NullTransport, Transport

__all__ = [
    'SettingsService',
    'EventLock',
    'EventService',
    'ScaffoldService',
    'SchedulerService',
    'NullTransport',
    'Transport',
]
