"""Unit tests for the session model."""

import json
import sys
import unittest
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking.session import LIVE_STATES, Session, SessionState, is_valid_duration


class TestSessionDerivedValues(unittest.TestCase):
    """Derived timing values."""

    def setUp(self):
        self.start = datetime(2025, 9, 1, 9, 0, 0, 250000)
        self.session = Session(duration=600, start_time=self.start)

    def test_end_time(self):
        self.assertEqual(self.session.end_time, self.start + timedelta(seconds=600))

    def test_values_at_start(self):
        self.assertEqual(self.session.remaining_time(self.start), 600)
        self.assertEqual(self.session.elapsed_time(self.start), 0)
        self.assertEqual(self.session.progress(self.start), 0.0)
        self.assertFalse(self.session.is_expired(self.start))

    def test_values_midway(self):
        now = self.start + timedelta(seconds=150)
        self.assertEqual(self.session.remaining_time(now), 450)
        self.assertEqual(self.session.elapsed_time(now), 150)
        self.assertAlmostEqual(self.session.progress(now), 0.25)

    def test_values_past_end_are_clamped(self):
        now = self.start + timedelta(seconds=900)
        self.assertTrue(self.session.is_expired(now))
        self.assertEqual(self.session.remaining_time(now), 0.0)
        self.assertEqual(self.session.elapsed_time(now), 600)
        self.assertEqual(self.session.progress(now), 1.0)

    def test_progress_before_start_is_clamped(self):
        self.assertEqual(self.session.progress(self.start - timedelta(seconds=5)), 0.0)

    def test_expired_exactly_at_end(self):
        self.assertTrue(self.session.is_expired(self.session.end_time))

    def test_non_positive_duration_rejected(self):
        with self.assertRaises(ValueError):
            Session(duration=0)
        with self.assertRaises(ValueError):
            Session(duration=-10)

    def test_unrepresentable_duration_rejected(self):
        for duration in (float("nan"), float("inf"), 1e12):
            with self.subTest(duration=duration):
                with self.assertRaises(ValueError):
                    Session(duration=duration, start_time=self.start)

    def test_is_valid_duration(self):
        self.assertTrue(is_valid_duration(1500, self.start))
        self.assertTrue(is_valid_duration(0.5, self.start))
        for value in (0, -1, True, "60", None, float("nan"), float("-inf"), 1e12):
            with self.subTest(value=value):
                self.assertFalse(is_valid_duration(value, self.start))
        self.assertFalse(is_valid_duration(120, datetime.max - timedelta(seconds=60)))

    def test_new_sessions_get_unique_ids(self):
        self.assertNotEqual(Session(60).id, Session(60).id)

    def test_defaults(self):
        session = Session(60)
        self.assertEqual(session.state, SessionState.ACTIVE)
        self.assertEqual(session.interruption_count, 0)


class TestSessionSerialization(unittest.TestCase):
    """Persisted form of a session."""

    def test_round_trip_keeps_sub_second_precision(self):
        session = Session(
            duration=1500.25,
            start_time=datetime(2025, 9, 1, 9, 0, 0, 123456),
            state=SessionState.WARNING,
            interruption_count=3,
        )
        encoded = json.dumps(session.to_dict())

        restored = Session.from_dict(json.loads(encoded))

        self.assertEqual(restored, session)
        self.assertEqual(restored.start_time.microsecond, 123456)
        self.assertEqual(restored.duration, 1500.25)
        self.assertEqual(restored.state, SessionState.WARNING)

    def test_malformed_records(self):
        good = Session(60, start_time=datetime(2025, 1, 1)).to_dict()
        cases = {
            "not a dict": "garbage",
            "none": None,
            "missing id": {k: v for k, v in good.items() if k != "id"},
            "empty id": dict(good, id=""),
            "bad timestamp": dict(good, start_time="yesterday"),
            "numeric timestamp": dict(good, start_time=12345),
            "zero duration": dict(good, duration=0),
            "string duration": dict(good, duration="60"),
            "bool duration": dict(good, duration=True),
            "nan duration": dict(good, duration=float("nan")),
            "infinite duration": dict(good, duration=float("inf")),
            "duration past datetime range": dict(good, duration=1e12),
            "duration past timedelta range": dict(good, duration=1e15),
            "aware timestamp": dict(good, start_time="2025-01-01T00:00:00+00:00"),
            "unknown state": dict(good, state="paused"),
            "negative count": dict(good, interruption_count=-1),
            "float count": dict(good, interruption_count=1.5),
        }
        for label, data in cases.items():
            with self.subTest(case=label):
                self.assertIsNone(Session.from_dict(data))


class TestSessionState(unittest.TestCase):

    def test_from_tag(self):
        self.assertEqual(SessionState.from_tag("quitting"), SessionState.QUITTING)
        self.assertIsNone(SessionState.from_tag("bogus"))
        self.assertIsNone(SessionState.from_tag(None))

    def test_live_states(self):
        self.assertEqual(
            LIVE_STATES,
            {SessionState.ACTIVE, SessionState.WARNING, SessionState.QUITTING},
        )


if __name__ == "__main__":
    unittest.main()
