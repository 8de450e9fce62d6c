"""Exception hierarchy shared by the repositories, services and front-ends.

Validation and transition errors carry a message that is safe to show to a
chat user as-is.  Persistence errors are not wrapped: SQLAlchemy exceptions
propagate unchanged to the caller.
"""


class SquashBotError(Exception):
    """Base class for all domain errors."""


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class ValidationError(SquashBotError):
    """User input could not be parsed or is out of range."""


class InvalidNotation(ValidationError):
    """Deadline notation does not match ``-<n>d|h [HH:MM]``."""


class InvalidTimeOfDay(ValidationError):
    """An ``HH:MM`` value is malformed or outside 00:00-23:59."""


class InvalidDayOfWeek(ValidationError):
    """Day-of-week name is not recognised."""


class InvalidEventDate(ValidationError):
    """Date expression for an ad-hoc event could not be parsed."""


class InvalidSetting(ValidationError):
    """Unknown setting key or a value that fails validation."""


# ---------------------------------------------------------------------------
# State machine / lookup / permissions
# ---------------------------------------------------------------------------

class InvalidTransition(SquashBotError):
    """The requested action is not allowed from the event's current state."""

    def __init__(self, event_id: str, action: str, status: str) -> None:
        super().__init__(f"Cannot {action} event {event_id} while it is {status}")
        self.event_id = event_id
        self.action = action
        self.status = status


class NotFoundError(SquashBotError):
    """Base class for missing records."""


class EventNotFound(NotFoundError):
    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class ScaffoldNotFound(NotFoundError):
    def __init__(self, scaffold_id: str) -> None:
        super().__init__(f"Scaffold {scaffold_id} not found")
        self.scaffold_id = scaffold_id


class PermissionDenied(SquashBotError):
    """Only the owner or an admin may perform this operation."""
