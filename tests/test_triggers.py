#!/usr/bin/env python3
"""
Tests for deadline triggers and the duplicate-occurrence guard.

Run with:
    python -m pytest tests/test_triggers.py
"""
import datetime
import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models import Event, Scaffold
from app.services.occurrence_guard import already_exists
from app.services.triggers import TriggerKind, deadline_notation, is_trigger_due

UTC = datetime.timezone.utc
START = datetime.datetime(2025, 1, 18, 19, 0, tzinfo=UTC)  # Sat 20:00 in Belgrade


def make_settings(announcement='-1d 12:00', cancellation='-1d 23:00', reminder='-2h',
                  timezone='Europe/Belgrade'):
    settings = MagicMock()
    settings.announcement_deadline.return_value = announcement
    settings.cancellation_deadline.return_value = cancellation
    settings.reminder_deadline.return_value = reminder
    settings.timezone.return_value = timezone
    return settings


class TestDeadlineNotation(unittest.TestCase):

    def test_global_settings(self):
        settings = make_settings()
        self.assertEqual(deadline_notation(TriggerKind.ANNOUNCEMENT, settings), '-1d 12:00')
        self.assertEqual(deadline_notation(TriggerKind.CANCELLATION, settings), '-1d 23:00')
        self.assertEqual(deadline_notation(TriggerKind.REMINDER, settings), '-2h')

    def test_scaffold_override(self):
        scaffold = Scaffold(id='sc_1', day_of_week='Sat', time='20:00', default_courts=1,
                            announcement_deadline='-3d')
        self.assertEqual(
            deadline_notation(TriggerKind.ANNOUNCEMENT, make_settings(), scaffold=scaffold), '-3d')

    def test_event_override_wins(self):
        scaffold = Scaffold(id='sc_1', day_of_week='Sat', time='20:00', default_courts=1,
                            announcement_deadline='-3d')
        event = Event(id='ev_1', start=START, courts=1, announcement_deadline='-5h')
        self.assertEqual(deadline_notation(TriggerKind.ANNOUNCEMENT, make_settings(),
                                           event=event, scaffold=scaffold), '-5h')

    def test_overrides_only_apply_to_announcements(self):
        event = Event(id='ev_1', start=START, courts=1, announcement_deadline='-5h')
        self.assertEqual(deadline_notation(TriggerKind.REMINDER, make_settings(), event=event), '-2h')


class TestTriggerDue(unittest.TestCase):

    def test_announcement_due(self):
        settings = make_settings()
        before = datetime.datetime(2025, 1, 17, 10, 59, tzinfo=UTC)
        after = datetime.datetime(2025, 1, 17, 11, 0, tzinfo=UTC)
        self.assertFalse(is_trigger_due(TriggerKind.ANNOUNCEMENT, START, settings, before))
        self.assertTrue(is_trigger_due(TriggerKind.ANNOUNCEMENT, START, settings, after))

    def test_settings_are_read_on_every_evaluation(self):
        settings = make_settings()
        now = datetime.datetime(2025, 1, 18, 16, 0, tzinfo=UTC)
        self.assertFalse(is_trigger_due(TriggerKind.REMINDER, START, settings, now))
        settings.reminder_deadline.return_value = '-4h'
        self.assertTrue(is_trigger_due(TriggerKind.REMINDER, START, settings, now))


class TestAlreadyExists(unittest.TestCase):

    def _event(self, start=START, scaffold_id='sc_1', deleted=False):
        return Event(id='ev_1', start=start, courts=1, scaffold_id=scaffold_id,
                     deleted_at=START if deleted else None)

    def test_exact_match(self):
        self.assertTrue(already_exists([self._event()], 'sc_1', START))

    def test_match_across_timezones(self):
        belgrade = START.astimezone(datetime.timezone(datetime.timedelta(hours=1)))
        self.assertTrue(already_exists([self._event()], 'sc_1', belgrade))

    def test_one_second_apart_is_different(self):
        self.assertFalse(already_exists([self._event()], 'sc_1',
                                        START + datetime.timedelta(seconds=1)))

    def test_other_scaffold(self):
        self.assertFalse(already_exists([self._event(scaffold_id='sc_2')], 'sc_1', START))

    def test_deleted_events_are_ignored(self):
        self.assertFalse(already_exists([self._event(deleted=True)], 'sc_1', START))

    def test_empty(self):
        self.assertFalse(already_exists([], 'sc_1', START))


if __name__ == '__main__':
    unittest.main()
