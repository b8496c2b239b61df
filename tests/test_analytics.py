"""Unit tests for the active-time accountant and capture collapsing."""

import unittest
from datetime import timedelta
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking.analytics import (
    collapse_captures,
    compute_active_seconds,
    compute_time_breakdown,
    format_duration,
)
from tracking.models import Capture, SessionEvent, TimeBreakdown
from tests.support import T0
import config


def _event(event_type, minutes, event_id="e"):
    return SessionEvent(
        event_id=f"{event_id}{minutes}",
        session_id="s1",
        event_type=event_type,
        created_at=T0 + timedelta(minutes=minutes),
    )


def _capture(title, app, seconds):
    return Capture(
        capture_id=f"c{seconds}",
        session_id="s1",
        window_title=title,
        app_name=app,
        captured_at=T0 + timedelta(seconds=seconds),
    )


class TestTimeBreakdown(unittest.TestCase):
    """Active/paused/total minutes from the pause-resume log."""

    def test_pause_resume_end(self):
        """Started T0, paused +30, resumed +60, ended +90 -> 60 active, 30 paused."""
        events = [_event(config.EVENT_PAUSED, 30), _event(config.EVENT_RESUMED, 60)]
        breakdown = compute_time_breakdown(T0, events, T0 + timedelta(minutes=90))

        self.assertAlmostEqual(breakdown.active_minutes, 60.0)
        self.assertAlmostEqual(breakdown.paused_minutes, 30.0)
        self.assertAlmostEqual(breakdown.total_minutes, 90.0)

    def test_no_events_all_active(self):
        breakdown = compute_time_breakdown(T0, [], T0 + timedelta(minutes=25))
        self.assertAlmostEqual(breakdown.active_minutes, 25.0)
        self.assertAlmostEqual(breakdown.paused_minutes, 0.0)

    def test_never_started_is_zero(self):
        breakdown = compute_time_breakdown(None, [], T0 + timedelta(minutes=10))
        self.assertEqual(breakdown, TimeBreakdown(0.0, 0.0, 0.0))

    def test_ended_while_paused_uses_end_boundary(self):
        """Paused time stops at the end boundary, not at some later 'now'."""
        events = [_event(config.EVENT_PAUSED, 20)]
        breakdown = compute_time_breakdown(T0, events, T0 + timedelta(minutes=50))

        self.assertAlmostEqual(breakdown.active_minutes, 20.0)
        self.assertAlmostEqual(breakdown.paused_minutes, 30.0)
        self.assertAlmostEqual(breakdown.total_minutes, 50.0)

    def test_inconsistent_events_are_skipped(self):
        """A second 'paused' in a row and a stray 'resumed' don't break the walk."""
        events = [
            _event(config.EVENT_RESUMED, 5),
            _event(config.EVENT_PAUSED, 10),
            _event(config.EVENT_PAUSED, 15),
            _event(config.EVENT_RESUMED, 20),
        ]
        seconds = compute_active_seconds(T0, events, T0 + timedelta(minutes=30))
        self.assertAlmostEqual(seconds, 20 * 60)

    def test_paused_clamped_at_zero(self):
        """Clock skew (event after the end boundary) can't produce negative paused time."""
        events = [_event(config.EVENT_PAUSED, 40)]
        breakdown = compute_time_breakdown(T0, events, T0 + timedelta(minutes=30))
        self.assertGreaterEqual(breakdown.paused_minutes, 0.0)

    def test_idempotent(self):
        events = [_event(config.EVENT_PAUSED, 7), _event(config.EVENT_RESUMED, 11)]
        end = T0 + timedelta(minutes=33, seconds=20)
        first = compute_time_breakdown(T0, events, end)
        second = compute_time_breakdown(T0, events, end)
        self.assertEqual(first, second)

    def test_rounded_to_one_decimal(self):
        breakdown = TimeBreakdown(10.04, 8.06, 1.98).rounded()
        self.assertEqual(breakdown, TimeBreakdown(10.0, 8.1, 2.0))


class TestCollapseCaptures(unittest.TestCase):
    """Merging consecutive identical captures into spans."""

    def test_empty(self):
        self.assertEqual(collapse_captures([]), [])

    def test_single_capture_zero_duration(self):
        spans = collapse_captures([_capture("login.tsx - VS Code", "Code", 0)])
        self.assertEqual(len(spans), 1)
        self.assertEqual(spans[0].duration_minutes, 0)

    def test_consecutive_same_window_merged(self):
        captures = [_capture("login.tsx - VS Code", "Code", s) for s in (0, 3, 6, 9)]
        spans = collapse_captures(captures)

        self.assertEqual(len(spans), 1)
        self.assertEqual(spans[0].start_time, T0)
        self.assertEqual(spans[0].end_time, T0 + timedelta(seconds=9))

    def test_title_change_splits(self):
        captures = [
            _capture("login.tsx - VS Code", "Code", 0),
            _capture("auth.ts - VS Code", "Code", 3),
        ]
        self.assertEqual(len(collapse_captures(captures)), 2)

    def test_app_change_splits(self):
        captures = [
            _capture("Inbox", "Mail", 0),
            _capture("Inbox", "Chrome", 3),
        ]
        self.assertEqual(len(collapse_captures(captures)), 2)

    def test_returning_window_is_new_span(self):
        captures = [
            _capture("A", "Code", 0),
            _capture("B", "Chrome", 3),
            _capture("A", "Code", 6),
        ]
        spans = collapse_captures(captures)
        self.assertEqual([s.window_title for s in spans], ["A", "B", "A"])


class TestFormatDuration(unittest.TestCase):

    def test_examples(self):
        self.assertEqual(format_duration(90), "1 min 30 secs")
        self.assertEqual(format_duration(3725), "1 hr 2 mins")
        self.assertEqual(format_duration(0), "0 sec")
        self.assertEqual(format_duration(-5), "0 sec")


if __name__ == "__main__":
    unittest.main()
