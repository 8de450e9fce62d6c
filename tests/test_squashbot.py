#!/usr/bin/env python3
"""
Tests for configuration loading and application wiring (squashbot.py).

Run with:
    python -m pytest tests/test_squashbot.py
"""
import datetime
import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import squashbot


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self._orig = os.getcwd()
        os.chdir(self.tmp)

    def tearDown(self):
        os.chdir(self._orig)
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _write(self, data):
        path = os.path.join(self.tmp, 'config.json')
        with open(path, 'w') as f:
            json.dump(data, f)
        return path

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults_without_file(self):
        config = squashbot.load_config(os.path.join(self.tmp, 'missing.json'))
        self.assertEqual(config['api_port'], 3010)
        self.assertEqual(config['timezone'], 'Europe/Belgrade')
        self.assertEqual(config['database_url'], 'sqlite:///squashbot.db')
        self.assertEqual(config['check_interval_minutes'], 5)

    @patch.dict(os.environ, {}, clear=True)
    def test_placeholders_are_dropped(self):
        config = squashbot.load_config(self._write({
            'discord_bot_token': 'YOUR_DISCORD_BOT_TOKEN',
            'admin_id': '42',
        }))
        self.assertNotIn('discord_bot_token', config)
        self.assertEqual(config['admin_id'], '42')

    @patch.dict(os.environ, {'API_PORT': '8080', 'ADMIN_ID': '7'}, clear=True)
    def test_environment_overrides_file(self):
        config = squashbot.load_config(self._write({'api_port': 3010, 'admin_id': '42'}))
        self.assertEqual(config['api_port'], 8080)
        self.assertEqual(config['admin_id'], '7')

    @patch.dict(os.environ, {'CHECK_INTERVAL_MINUTES': 'often'}, clear=True)
    def test_bad_integer_falls_back(self):
        config = squashbot.load_config(os.path.join(self.tmp, 'missing.json'))
        self.assertEqual(config['check_interval_minutes'], 5)

    def test_is_placeholder_value(self):
        self.assertTrue(squashbot.is_placeholder_value(''))
        self.assertTrue(squashbot.is_placeholder_value(None))
        self.assertTrue(squashbot.is_placeholder_value('YOUR_API_KEY'))
        self.assertFalse(squashbot.is_placeholder_value('abc'))
        self.assertFalse(squashbot.is_placeholder_value(5))


class TestSquashBotWiring(unittest.TestCase):

    def test_services_share_one_database(self):
        core = squashbot.SquashBot({'database_url': 'sqlite:///:memory:', 'admin_id': '42',
                                    'timezone': 'Europe/Belgrade'})
        self.assertTrue(core.settings.is_admin('42'))
        core.scaffolds.create('Sat', '20:00', 2)
        report = core.scheduler.tick(datetime.datetime(2025, 1, 17, 12, 0,
                                                       tzinfo=datetime.timezone.utc))
        self.assertEqual((report.created, report.announced), (1, 1))
        [event] = core.events.list_events()
        self.assertEqual(event.status, 'announced')
        self.assertEqual(event.owner_id, '42')


if __name__ == '__main__':
    unittest.main()
