#!/usr/bin/env python3
"""
Unit tests for the app/repositories layer on an in-memory SQLite database.

Run with:
    python -m pytest tests/test_repositories.py
"""
import datetime
import os
import sys
import unittest

from sqlalchemy.exc import IntegrityError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from app.errors import EventNotFound
from app.models import ActiveEvent, DeletedEvent
from app.repositories import (EventRepository, ParticipantRepository,
                              ScaffoldRepository, SettingsRepository)

UTC = datetime.timezone.utc
START = datetime.datetime(2025, 1, 18, 19, 0, tzinfo=UTC)


class DatabaseMixin(unittest.TestCase):
    """Creates a fresh in-memory database for each test."""

    def setUp(self):
        self.session_factory = database.create_session_factory('sqlite:///:memory:')
        database.init_db(self.session_factory)

    def tearDown(self):
        self.session_factory.kw['bind'].dispose()


# ===========================================================================
# Scaffolds
# ===========================================================================

class TestScaffoldRepository(DatabaseMixin):

    def setUp(self):
        super().setUp()
        self.repo = ScaffoldRepository(self.session_factory)

    def test_create_and_find(self):
        created = self.repo.create('Tue', '20:00', 2, owner_id='42')
        found = self.repo.find(created.id)
        self.assertEqual(found, created)
        self.assertTrue(created.id.startswith('sc_'))
        self.assertTrue(found.is_active)

    def test_list_filters_inactive(self):
        active = self.repo.create('Tue', '20:00', 2)
        inactive = self.repo.create('Thu', '19:00', 1)
        self.repo.update(inactive.id, is_active=False)
        self.assertEqual([s.id for s in self.repo.list(include_inactive=False)], [active.id])
        self.assertEqual(len(self.repo.list()), 2)

    def test_update_unknown_field(self):
        scaffold = self.repo.create('Tue', '20:00', 2)
        with self.assertRaises(KeyError):
            self.repo.update(scaffold.id, colour='red')

    def test_update_missing_returns_none(self):
        self.assertIsNone(self.repo.update('sc_missing', default_courts=3))

    def test_soft_delete_and_restore(self):
        scaffold = self.repo.create('Tue', '20:00', 2)
        self.repo.set_deleted(scaffold.id, True)
        self.assertIsNone(self.repo.find(scaffold.id))
        self.assertEqual(self.repo.list(), [])
        self.assertEqual([s.id for s in self.repo.list_deleted()], [scaffold.id])
        self.assertIsNotNone(self.repo.find_including_deleted(scaffold.id).deleted_at)

        restored = self.repo.set_deleted(scaffold.id, False)
        self.assertIsNone(restored.deleted_at)
        self.assertEqual(self.repo.find(scaffold.id).id, scaffold.id)


# ===========================================================================
# Events
# ===========================================================================

class TestEventRepository(DatabaseMixin):

    def setUp(self):
        super().setUp()
        self.scaffolds = ScaffoldRepository(self.session_factory)
        self.repo = EventRepository(self.session_factory)
        self.scaffold = self.scaffolds.create('Sat', '20:00', 2)

    def test_create_round_trips_aware_utc(self):
        event = self.repo.create(START, 2, scaffold_id=self.scaffold.id)
        found = self.repo.find(event.id)
        self.assertEqual(found.start, START)
        self.assertEqual(found.start.utcoffset(), datetime.timedelta(0))
        self.assertEqual(found.status, 'created')

    def test_invalid_status(self):
        with self.assertRaises(ValueError):
            self.repo.create(START, 1, status='maybe')

    def test_duplicate_live_slot_is_rejected(self):
        self.repo.create(START, 2, scaffold_id=self.scaffold.id)
        with self.assertRaises(IntegrityError):
            self.repo.create(START, 2, scaffold_id=self.scaffold.id)
        self.assertEqual(len(self.repo.list()), 1)

    def test_slot_can_be_reused_after_soft_delete(self):
        first = self.repo.create(START, 2, scaffold_id=self.scaffold.id)
        self.repo.update(first.id, deleted_at=START)
        second = self.repo.create(START, 2, scaffold_id=self.scaffold.id)
        self.assertNotEqual(first.id, second.id)

    def test_ad_hoc_events_do_not_collide(self):
        self.repo.create(START, 1)
        self.repo.create(START, 1)
        self.assertEqual(len(self.repo.list()), 2)

    def test_find_including_deleted_tags_result(self):
        event = self.repo.create(START, 1)
        self.assertIsInstance(self.repo.find_including_deleted(event.id), ActiveEvent)
        self.repo.update(event.id, deleted_at=START)
        found = self.repo.find_including_deleted(event.id)
        self.assertIsInstance(found, DeletedEvent)
        self.assertEqual(found.deleted_at, START)
        self.assertIsNone(self.repo.find(event.id))
        self.assertIsNone(self.repo.find_including_deleted('ev_missing'))

    def test_list_filters(self):
        a = self.repo.create(START, 1)
        b = self.repo.create(START + datetime.timedelta(days=1), 1, status='announced')
        c = self.repo.create(START + datetime.timedelta(days=2), 1)
        self.repo.update(c.id, deleted_at=START)
        self.assertEqual([e.id for e in self.repo.list()], [a.id, b.id])
        self.assertEqual([e.id for e in self.repo.list(statuses=['announced'])], [b.id])
        self.assertEqual(len(self.repo.list(include_deleted=True)), 3)

    def test_update(self):
        event = self.repo.create(START, 1)
        updated = self.repo.update(event.id, status='announced', message_id='123')
        self.assertEqual(updated.status, 'announced')
        self.assertEqual(self.repo.find(event.id).message_id, '123')

    def test_update_errors(self):
        event = self.repo.create(START, 1)
        with self.assertRaises(EventNotFound):
            self.repo.update('ev_missing', courts=2)
        with self.assertRaises(KeyError):
            self.repo.update(event.id, start=START)
        with self.assertRaises(ValueError):
            self.repo.update(event.id, status='maybe')


# ===========================================================================
# Participants
# ===========================================================================

class TestParticipantRepository(DatabaseMixin):

    def setUp(self):
        super().setUp()
        self.events = EventRepository(self.session_factory)
        self.repo = ParticipantRepository(self.session_factory)
        self.event = self.events.create(START, 1, status='announced')

    def test_find_or_create_is_idempotent(self):
        first = self.repo.find_or_create('100', 'alice', 'Alice')
        second = self.repo.find_or_create('100', 'alice', 'Alice')
        self.assertEqual(first.id, second.id)
        self.assertEqual(first.label, '@alice')

    def test_find_or_create_updates_username(self):
        self.repo.find_or_create('100', 'alice', 'Alice')
        self.repo.find_or_create('100', 'alice2', 'Alice')
        self.assertEqual(self.repo.find_by_username('@alice2').user_id, '100')

    def test_participations_count(self):
        alice = self.repo.find_or_create('100', 'alice', 'Alice')
        self.assertEqual(self.repo.add_to_event(self.event.id, alice.id), 1)
        self.assertEqual(self.repo.add_to_event(self.event.id, alice.id), 2)
        registrations = self.repo.event_registrations(self.event.id)
        self.assertEqual(len(registrations), 1)
        self.assertEqual(registrations[0].participations, 2)

        self.assertEqual(self.repo.remove_from_event(self.event.id, alice.id), 1)
        self.assertEqual(self.repo.remove_from_event(self.event.id, alice.id), 0)
        self.assertEqual(self.repo.event_registrations(self.event.id), [])
        self.assertEqual(self.repo.remove_from_event(self.event.id, alice.id), 0)

    def test_registrations_keep_join_order(self):
        bob = self.repo.find_or_create('200', 'bob', 'Bob')
        alice = self.repo.find_or_create('100', 'alice', 'Alice')
        self.repo.add_to_event(self.event.id, bob.id)
        self.repo.add_to_event(self.event.id, alice.id)
        labels = [r.participant.label for r in self.repo.event_registrations(self.event.id)]
        self.assertEqual(labels, ['@bob', '@alice'])


# ===========================================================================
# Settings
# ===========================================================================

class TestSettingsRepository(DatabaseMixin):

    def test_set_get_delete(self):
        repo = SettingsRepository(self.session_factory)
        self.assertIsNone(repo.get('court_price'))
        repo.set('court_price', '2500', updated_by='42')
        repo.set('court_price', '3000')
        self.assertEqual(repo.get('court_price'), '3000')
        self.assertEqual(repo.get_all(), {'court_price': '3000'})
        self.assertTrue(repo.delete('court_price'))
        self.assertFalse(repo.delete('court_price'))


if __name__ == '__main__':
    unittest.main()
