#!/usr/bin/env python3
"""
Tests for weekly recurrence and ad-hoc date parsing (app/services/recurrence.py).

Run with:
    python -m pytest tests/test_recurrence.py
"""
import datetime
import os
import sys
import unittest
from zoneinfo import ZoneInfo

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.errors import InvalidDayOfWeek, InvalidEventDate, InvalidTimeOfDay
from app.models import Scaffold
from app.services.recurrence import (combine_local, next_occurrence, parse_day_of_week,
                                     parse_event_date, parse_time_of_day)

TZ = 'Europe/Belgrade'
UTC = datetime.timezone.utc
BELGRADE = ZoneInfo(TZ)


def scaffold(day='Tue', time='20:00') -> Scaffold:
    return Scaffold(id='sc_test', day_of_week=day, time=time, default_courts=2)


class TestParsers(unittest.TestCase):

    def test_day_names(self):
        for text, expected in (('tue', 'Tue'), ('Tuesday', 'Tue'), ('SAT', 'Sat'), (' sun ', 'Sun')):
            with self.subTest(text=text):
                self.assertEqual(parse_day_of_week(text), expected)

    def test_invalid_day(self):
        for text in ('', 'funday', 'tu'):
            with self.subTest(text=text):
                with self.assertRaises(InvalidDayOfWeek):
                    parse_day_of_week(text)

    def test_time_of_day(self):
        self.assertEqual(parse_time_of_day('20:00'), (20, 0))
        self.assertEqual(parse_time_of_day('9:05'), (9, 5))

    def test_invalid_time_of_day(self):
        for text in ('24:00', '12:60', '12:5', 'noon', '', '123:00'):
            with self.subTest(text=text):
                with self.assertRaises(InvalidTimeOfDay):
                    parse_time_of_day(text)


class TestNextOccurrence(unittest.TestCase):

    def test_later_this_week(self):
        now = datetime.datetime(2025, 1, 13, 10, 0, tzinfo=UTC)  # Monday
        self.assertEqual(next_occurrence(scaffold(), now, TZ),
                         datetime.datetime(2025, 1, 14, 20, 0, tzinfo=BELGRADE))

    def test_same_day_before_slot(self):
        now = datetime.datetime(2025, 1, 14, 8, 0, tzinfo=UTC)
        self.assertEqual(next_occurrence(scaffold(), now, TZ),
                         datetime.datetime(2025, 1, 14, 20, 0, tzinfo=BELGRADE))

    def test_inclusive_of_now(self):
        now = datetime.datetime(2025, 1, 14, 19, 0, tzinfo=UTC)  # 20:00 local
        self.assertEqual(next_occurrence(scaffold(), now, TZ), now)

    def test_slot_passed_moves_to_next_week(self):
        now = datetime.datetime(2025, 1, 14, 19, 1, tzinfo=UTC)
        self.assertEqual(next_occurrence(scaffold(), now, TZ),
                         datetime.datetime(2025, 1, 21, 20, 0, tzinfo=BELGRADE))

    def test_uses_local_date_not_utc_date(self):
        # 23:30 UTC on Monday is already Tuesday 00:30 in Belgrade.
        now = datetime.datetime(2025, 1, 13, 23, 30, tzinfo=UTC)
        result = next_occurrence(scaffold('Tue', '01:00'), now, TZ)
        self.assertEqual(result, datetime.datetime(2025, 1, 14, 1, 0, tzinfo=BELGRADE))

    def test_wall_clock_kept_across_dst(self):
        now = datetime.datetime(2025, 3, 29, 12, 0, tzinfo=UTC)
        result = next_occurrence(scaffold('Sun', '20:00'), now, TZ)
        self.assertEqual(result.astimezone(UTC), datetime.datetime(2025, 3, 30, 18, 0, tzinfo=UTC))
        self.assertEqual((result.hour, result.minute), (20, 0))

    def test_result_is_in_configured_zone(self):
        now = datetime.datetime(2025, 1, 13, 10, 0, tzinfo=UTC)
        result = next_occurrence(scaffold(), now, TZ)
        self.assertEqual(result.utcoffset(), datetime.timedelta(hours=1))

    def test_never_earlier_than_now_within_a_week(self):
        start = datetime.datetime(2025, 1, 13, 0, 0, tzinfo=UTC)
        for hours in range(0, 24 * 8, 5):
            now = start + datetime.timedelta(hours=hours)
            with self.subTest(now=now):
                result = next_occurrence(scaffold('Thu', '18:30'), now, TZ)
                self.assertGreaterEqual(result, now)
                self.assertLess(result - now, datetime.timedelta(days=7))
                self.assertEqual(result.weekday(), 3)


class TestParseEventDate(unittest.TestCase):

    NOW = datetime.datetime(2025, 1, 15, 10, 0, tzinfo=UTC)  # Wednesday

    def test_iso_date(self):
        self.assertEqual(parse_event_date('2025-02-01', TZ, self.NOW), datetime.date(2025, 2, 1))

    def test_today_and_tomorrow(self):
        self.assertEqual(parse_event_date('today', TZ, self.NOW), datetime.date(2025, 1, 15))
        self.assertEqual(parse_event_date('Tomorrow', TZ, self.NOW), datetime.date(2025, 1, 16))

    def test_day_name_is_coming_day(self):
        self.assertEqual(parse_event_date('sat', TZ, self.NOW), datetime.date(2025, 1, 18))

    def test_day_name_never_today(self):
        self.assertEqual(parse_event_date('wed', TZ, self.NOW), datetime.date(2025, 1, 22))

    def test_next_day_name(self):
        self.assertEqual(parse_event_date('next sat', TZ, self.NOW), datetime.date(2025, 1, 25))
        self.assertEqual(parse_event_date('next wednesday', TZ, self.NOW), datetime.date(2025, 1, 22))

    def test_invalid(self):
        for text in ('', 'someday', '2025-13-01', 'next week'):
            with self.subTest(text=text):
                with self.assertRaises(InvalidEventDate):
                    parse_event_date(text, TZ, self.NOW)

    def test_combine_local(self):
        self.assertEqual(combine_local(datetime.date(2025, 1, 18), '20:00', TZ),
                         datetime.datetime(2025, 1, 18, 19, 0, tzinfo=UTC))


if __name__ == '__main__':
    unittest.main()
