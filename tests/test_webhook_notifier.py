#!/usr/bin/env python3
"""
Tests for webhook_notifier.py (operator log channel).

Run with:
    python -m pytest tests/test_webhook_notifier.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from webhook_notifier import WebhookNotifier, format_event

DISCORD_URL = 'https://discord.com/api/webhooks/1/abc'
SLACK_URL = 'https://hooks.slack.com/services/T/B/X'


def _resp_ok():
    resp = MagicMock()
    resp.status_code = 200
    resp.raise_for_status.return_value = None
    return resp


def _payload(mock_post):
    return mock_post.call_args.kwargs.get('json') or mock_post.call_args[1].get('json')


class TestFormatEvent(unittest.TestCase):

    def test_known_kind(self):
        self.assertEqual(format_event('court_added', event_id='ev_1', courts=3),
                         '➕ Court added: ev_1 (now 3)')

    def test_unknown_kind_lists_fields(self):
        self.assertEqual(format_event('mystery', b=2, a=1), 'mystery: a=1, b=2')

    def test_missing_field_falls_back(self):
        self.assertEqual(format_event('court_added', event_id='ev_1'), 'court_added: event_id=ev_1')

    def test_no_fields(self):
        self.assertEqual(format_event('ping'), 'ping')


class TestWebhookNotifier(unittest.TestCase):

    def test_disabled_without_urls(self):
        self.assertFalse(WebhookNotifier({}).enabled)
        self.assertFalse(WebhookNotifier({'log_webhook_url': 'YOUR_WEBHOOK_URL'}).enabled)
        self.assertTrue(WebhookNotifier({'log_webhook_url': DISCORD_URL}).enabled)

    @patch('webhook_notifier.requests.post')
    def test_nothing_sent_when_disabled(self, mock_post):
        self.assertEqual(WebhookNotifier({}).notify_event('event_deleted', event_id='ev_1'), {})
        mock_post.assert_not_called()

    @patch('webhook_notifier.requests.post')
    def test_notify_event_posts_to_discord(self, mock_post):
        mock_post.return_value = _resp_ok()
        n = WebhookNotifier({'log_webhook_url': DISCORD_URL})
        self.assertEqual(n.notify_event('participant_joined', event_id='ev_1', user_name='Alice'),
                         {'discord': True})
        self.assertEqual(mock_post.call_args[0][0], DISCORD_URL)
        payload = _payload(mock_post)
        self.assertEqual(payload['content'], '👋 Alice joined ev_1')
        self.assertEqual(payload['allowed_mentions'], {'parse': []})

    @patch('webhook_notifier.requests.post')
    def test_both_services(self, mock_post):
        mock_post.return_value = _resp_ok()
        n = WebhookNotifier({'log_webhook_url': DISCORD_URL, 'slack_webhook_url': SLACK_URL})
        self.assertEqual(n.log('hello'), {'discord': True, 'slack': True})
        self.assertEqual(mock_post.call_count, 2)

    @patch('webhook_notifier.requests.post')
    def test_discord_content_is_truncated(self, mock_post):
        mock_post.return_value = _resp_ok()
        WebhookNotifier({}).send_discord(DISCORD_URL, 'x' * 2500)
        self.assertEqual(len(_payload(mock_post)['content']), 2000)

    @patch('webhook_notifier.requests.post')
    def test_error_level_prefix(self, mock_post):
        mock_post.return_value = _resp_ok()
        WebhookNotifier({'log_webhook_url': DISCORD_URL}).log('tick failed', level='error')
        self.assertEqual(_payload(mock_post)['content'], '❌ tick failed')

    @patch('webhook_notifier.requests.post')
    def test_slack_payload_has_blocks(self, mock_post):
        mock_post.return_value = _resp_ok()
        WebhookNotifier({}).send_slack(SLACK_URL, 'hello')
        payload = _payload(mock_post)
        self.assertEqual(payload['text'], 'hello')
        self.assertEqual(payload['blocks'][0]['text']['text'], 'hello')

    @patch('webhook_notifier.requests.post')
    def test_network_error_is_swallowed(self, mock_post):
        mock_post.side_effect = requests.RequestException('down')
        n = WebhookNotifier({'log_webhook_url': DISCORD_URL})
        self.assertEqual(n.log('hello'), {'discord': False})

    @patch('webhook_notifier.requests.post')
    def test_http_error_is_failure(self, mock_post):
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError('404')
        mock_post.return_value = resp
        self.assertFalse(WebhookNotifier({}).send_discord(DISCORD_URL, 'hello'))

    def test_get_strips_whitespace(self):
        self.assertEqual(WebhookNotifier({'key': '  value  '})._get('key'), 'value')


if __name__ == '__main__':
    unittest.main()
