"""Keyed mutual exclusion for event mutations."""
import contextlib
import logging
import threading
from typing import Callable, Dict, Iterator, TypeVar

T = TypeVar('T')

_log = logging.getLogger('squashbot.lock')


class _Entry:
    __slots__ = ('condition', 'next_ticket', 'serving', 'users')

    def __init__(self, condition: threading.Condition) -> None:
        self.condition = condition
        self.next_ticket = 0
        self.serving = 0
        self.users = 0


class EventLock:
    """Serialises operations per event id; different ids never block each other.

    Waiters for the same id are served in arrival order (ticket lock).  The
    lock is not re-entrant: holding an id and asking for it again from the
    same thread deadlocks.  Entries exist only while some thread holds or
    waits for an id.

    Example::

        lock = EventLock()
        with lock.hold('ev_1234abcd'):
            ...  # read, mutate and persist the event
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextlib.contextmanager
    def hold(self, event_id: str) -> Iterator[None]:
        self._acquire(event_id)
        try:
            yield
        finally:
            self._release(event_id)

    def with_lock(self, event_id: str, operation: Callable[..., T], *args, **kwargs) -> T:
        """Run ``operation(*args, **kwargs)`` while holding *event_id*'s lock."""
        with self.hold(event_id):
            return operation(*args, **kwargs)

    def is_locked(self, event_id: str) -> bool:
        with self._mutex:
            return event_id in self._entries

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _acquire(self, event_id: str) -> None:
        with self._mutex:
            entry = self._entries.get(event_id)
            if entry is None:
                entry = _Entry(threading.Condition(self._mutex))
                self._entries[event_id] = entry
            ticket = entry.next_ticket
            entry.next_ticket += 1
            entry.users += 1
            if entry.serving != ticket:
                _log.debug("Waiting for lock on %s (%d ahead)", event_id, ticket - entry.serving)
            while entry.serving != ticket:
                entry.condition.wait()

    def _release(self, event_id: str) -> None:
        with self._mutex:
            entry = self._entries[event_id]
            entry.serving += 1
            entry.users -= 1
            if entry.users == 0:
                del self._entries[event_id]
            else:
                entry.condition.notify_all()
