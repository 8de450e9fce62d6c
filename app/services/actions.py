"""The closed set of state-changing event actions.

Every action that mutates an event is one of the dataclasses below and is
executed through :meth:`app.services.event_service.EventService.execute`,
which holds the event's exclusion lock for the whole operation.  Adding an
action means adding a class here *and* a handler in ``EventService``; the
service refuses to start if a handler is missing.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Type

from ..models import Event


@dataclass(frozen=True)
class Actor:
    """The chat user on whose behalf an action runs."""
    user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class EventAction:
    event_id: str
    actor: Optional[Actor] = None

    name = 'action'


@dataclass(frozen=True)
class Announce(EventAction):
    name = 'announce'


@dataclass(frozen=True)
class Join(EventAction):
    name = 'join'


@dataclass(frozen=True)
class Leave(EventAction):
    name = 'leave'


@dataclass(frozen=True)
class AddCourt(EventAction):
    name = 'add-court'


@dataclass(frozen=True)
class RemoveCourt(EventAction):
    name = 'remove-court'


@dataclass(frozen=True)
class Finalize(EventAction):
    name = 'finalize'


@dataclass(frozen=True)
class Unfinalize(EventAction):
    name = 'undo-finalize'


@dataclass(frozen=True)
class Cancel(EventAction):
    name = 'cancel'


@dataclass(frozen=True)
class Restore(EventAction):
    name = 'undo-cancel'


@dataclass(frozen=True)
class Delete(EventAction):
    name = 'delete'


@dataclass(frozen=True)
class UndoDelete(EventAction):
    name = 'undo-delete'


@dataclass(frozen=True)
class Transfer(EventAction):
    target_username: str = ''

    name = 'transfer'


@dataclass(frozen=True)
class SendReminder(EventAction):
    name = 'remind'


@dataclass(frozen=True)
class CheckCancellationDeadline(EventAction):
    name = 'check-cancellation'


ALL_ACTIONS = (
    Announce, Join, Leave, AddCourt, RemoveCourt, Finalize, Unfinalize,
    Cancel, Restore, Delete, UndoDelete, Transfer, SendReminder,
    CheckCancellationDeadline,
)

ACTIONS_BY_NAME: Dict[str, Type[EventAction]] = {cls.name: cls for cls in ALL_ACTIONS}

# Actions exposed as buttons on the announcement message.
BUTTON_ACTIONS = (Join, Leave, AddCourt, RemoveCourt, Finalize, Unfinalize, Cancel, Restore)


@dataclass
class ActionResult:
    """Outcome of an executed action.

    ``changed`` is ``False`` when the action was accepted but had nothing to
    do (for example un-finalizing an event that is merely announced).
    ``message`` is a short human-readable status line.
    """
    event: Event
    changed: bool = True
    message: str = ''
    details: dict = field(default_factory=dict)
