"""
webhook_notifier.py
===================
Post SquashBot activity (events created, players joining, courts added, ...)
to an operator log channel through incoming webhooks:

* **Discord**: channel webhook, plain ``content`` message
* **Slack**: Incoming Webhook with a single mrkdwn section

All methods are *fire-and-forget*: they perform the HTTP request in the
calling thread and swallow network errors so that a broken log channel never
disrupts event handling.

Configuration
-------------
Add either or both keys to ``config.json``::

    "log_webhook_url":   "https://discord.com/api/webhooks/.../...",
    "slack_webhook_url": "https://hooks.slack.com/services/T.../B.../..."

Usage
-----
::

    from webhook_notifier import WebhookNotifier

    notifier = WebhookNotifier(config)
    notifier.notify_event('court_added', event_id='ev_1234abcd', courts=3)
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

logger = logging.getLogger('squashbot.webhook')

_DEFAULT_TIMEOUT = 8  # seconds

_EVENT_FORMATS = {
    'bot_started':        '🟢 Bot started as {bot_name}',
    'event_created':      '📅 Event created: {date}, {courts} courts',
    'event_announced':    '📢 Event announced: {date}',
    'event_finalized':    '✅ Event finalized: {date}, {participant_count} players',
    'event_cancelled':    '❌ Event cancelled: {date}',
    'event_restored':     '🔄 Event restored: {date}',
    'event_deleted':      '🗑 Event deleted: {event_id}',
    'event_undeleted':    '♻️ Event undeleted: {event_id}',
    'event_transferred':  '🔁 Event {event_id} transferred to {owner}',
    'participant_joined': '👋 {user_name} joined {event_id}',
    'participant_left':   '👋 {user_name} left {event_id}',
    'court_added':        '➕ Court added: {event_id} (now {courts})',
    'court_removed':      '➖ Court removed: {event_id} (now {courts})',
    'reminder_sent':      '⏰ Reminder sent: {event_id}',
    'scaffold_created':   '📋 Scaffold created: {day} {time}, {courts} courts',
    'scaffold_toggled':   '🔀 Scaffold {scaffold_id}: {state}',
    'scaffold_removed':   '🗑 Scaffold removed: {scaffold_id}',
    'check_completed':    '🔍 Event check: {created} created, {announced} announced, '
                          '{reminded} reminded, {cancelled} cancelled',
}

_LEVEL_PREFIX = {'info': 'ℹ️', 'warning': '⚠️', 'error': '❌'}


def format_event(kind: str, **fields: Any) -> str:
    """Render a one-line log message for *kind*.

    Unknown kinds, or a template missing a field, fall back to
    ``"<kind>: key=value, ..."``.
    """
    template = _EVENT_FORMATS.get(kind)
    if template:
        try:
            return template.format(**fields)
        except KeyError:
            pass
    details = ', '.join(f'{key}={value}' for key, value in sorted(fields.items()))
    return f'{kind}: {details}' if details else kind


class WebhookNotifier:
    """Dispatch activity lines to one or more log webhooks.

    Args:
        config: The application configuration dict (from ``config.json``).
        timeout: HTTP request timeout in seconds.
    """

    def __init__(self, config: Dict[str, Any], timeout: int = _DEFAULT_TIMEOUT) -> None:
        self._cfg     = config or {}
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return bool(self._get('log_webhook_url') or self._get('slack_webhook_url'))

    def notify_event(self, kind: str, **fields: Any) -> Dict[str, bool]:
        """Format a business event and send it to every configured webhook.

        Returns:
            A ``{service: success}`` dict, e.g. ``{"discord": True}``.
        """
        return self.log(format_event(kind, **fields))

    def log(self, message: str, level: str = 'info') -> Dict[str, bool]:
        """Send a free-form log line.  Errors and warnings get a marker prefix."""
        if level in ('warning', 'error'):
            message = f"{_LEVEL_PREFIX[level]} {message}"

        results: Dict[str, bool] = {}

        discord_url = self._get('log_webhook_url')
        if discord_url:
            results['discord'] = self.send_discord(discord_url, message)

        slack_url = self._get('slack_webhook_url')
        if slack_url:
            results['slack'] = self.send_slack(slack_url, message)

        return results

    def send_discord(self, webhook_url: str, message: str) -> bool:
        """Post *message* to a Discord channel webhook.

        Discord rejects ``content`` longer than 2000 characters, so longer
        messages are truncated.

        Returns:
            ``True`` on a 2xx response, ``False`` otherwise.
        """
        payload = {
            "content": message[:2000],
            "username": self._cfg.get('log_webhook_username', 'SquashBot'),
            "allowed_mentions": {"parse": []},
        }
        return self._post(webhook_url, payload)

    def send_slack(self, webhook_url: str, message: str) -> bool:
        """Post *message* to a Slack Incoming Webhook.

        Returns:
            ``True`` on a 2xx response, ``False`` otherwise.
        """
        payload = {
            "text": message,
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": message},
                }
            ],
        }
        return self._post(webhook_url, payload)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, key: str) -> str:
        """Return a config value, or empty string if absent / placeholder."""
        val = self._cfg.get(key, '')
        if not val or not isinstance(val, str):
            return ''
        if val.startswith('YOUR_') or not val.strip():
            return ''
        return val.strip()

    def _post(self, url: str, payload: Dict[str, Any]) -> bool:
        try:
            resp = requests.post(url, json=payload, timeout=self._timeout)
            resp.raise_for_status()
            logger.debug("Webhook delivered to %s (HTTP %s)", url, resp.status_code)
            return True
        except requests.RequestException as exc:
            logger.warning("Webhook delivery failed (%s): %s", url, exc)
            return False
