"""Messaging collaborator interface used by the services."""
import logging
from typing import List, Optional, Protocol

from ..models import Event, Registration


class Transport(Protocol):
    """What the core needs from a chat platform.

    Calls are synchronous; implementations that talk to an async client must
    block until the message has been sent (see ``discord_bot.DiscordTransport``).
    """

    def post_announcement(self, event: Event, registrations: List[Registration],
                          timezone: str) -> Optional[str]:
        """Post the announcement and return an opaque message reference."""

    def edit_announcement(self, event: Event, registrations: List[Registration],
                          timezone: str) -> None:
        """Re-render an existing announcement after the event changed."""

    def send_message(self, text: str) -> None:
        """Post a plain text message to the main channel."""


class NullTransport:
    """Transport used when no chat client is attached (CLI runs, tests).

    Messages are only logged; announcements get no message reference.
    """

    def __init__(self) -> None:
        self._log = logging.getLogger('squashbot.transport.null')
        self.sent: List[str] = []

    def post_announcement(self, event, registrations, timezone):
        self._log.info("Announcement for %s (no chat attached)", event.id)
        return None

    def edit_announcement(self, event, registrations, timezone):
        self._log.debug("Announcement refresh for %s (no chat attached)", event.id)

    def send_message(self, text):
        self._log.info("Message (no chat attached): %s", text)
        self.sent.append(text)
