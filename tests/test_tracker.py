"""Tests for core/tracker.py single-slot wake trigger state."""

import threading
import time

import pytest

from core.models import PipelineClosed, WakeTrigger
from core.tracker import WakeTriggerTracker


class TestOnScore:
    def test_qualifying_score_records_trigger(self, clock):
        tracker = WakeTriggerTracker(threshold=0.75, clock=clock)
        event = tracker.on_score(0.9, "clap")

        assert event is not None
        assert event.score == 0.9
        assert event.label == "clap"
        assert event.timestamp_ms == clock.now
        assert tracker.trigger == WakeTrigger(timestamp_ms=clock.now, score=0.9)

    def test_score_at_threshold_ignored(self, clock):
        """Threshold is strict: equal does not qualify."""
        tracker = WakeTriggerTracker(threshold=0.75, clock=clock)
        assert tracker.on_score(0.75, "clap") is None
        assert tracker.trigger is None

    def test_score_above_sanity_ceiling_ignored(self, clock):
        """1.9 is above the 1.62 ceiling: never a trigger, even though it beats the threshold."""
        tracker = WakeTriggerTracker(threshold=0.75, clock=clock)
        assert tracker.on_score(1.9, "clap") is None
        assert tracker.on_score(1.62, "clap") is None
        assert tracker.trigger is None

    def test_invalid_score_leaves_existing_trigger(self, clock):
        tracker = WakeTriggerTracker(threshold=0.75, clock=clock)
        tracker.on_score(0.8, "clap")
        clock.advance(100)
        tracker.on_score(1.9, "clap")
        tracker.on_score(0.1, "clap")
        assert tracker.trigger.timestamp_ms == clock.now - 100

    def test_newest_trigger_overwrites(self, clock):
        tracker = WakeTriggerTracker(threshold=0.5, clock=clock)
        tracker.on_score(0.6, "a")
        clock.advance(250)
        tracker.on_score(0.7, "a")
        assert tracker.trigger == WakeTrigger(timestamp_ms=clock.now, score=0.7)


class TestClearAndVersion:
    def test_clear_resets_to_absent(self, clock):
        tracker = WakeTriggerTracker(threshold=0.5, clock=clock)
        tracker.on_score(0.9, "a")
        tracker.clear()
        assert tracker.trigger is None

    def test_only_new_score_rearms(self, clock):
        tracker = WakeTriggerTracker(threshold=0.5, clock=clock)
        tracker.on_score(0.9, "a")
        tracker.clear()
        tracker.on_score(0.2, "a")
        assert tracker.trigger is None
        tracker.on_score(0.8, "a")
        assert tracker.trigger is not None

    def test_version_bumps_on_write_and_clear(self, clock):
        tracker = WakeTriggerTracker(threshold=0.5, clock=clock)
        _, v0 = tracker.snapshot()
        tracker.on_score(0.9, "a")
        _, v1 = tracker.snapshot()
        tracker.clear()
        _, v2 = tracker.snapshot()
        assert v0 < v1 < v2

    def test_rejected_score_does_not_bump_version(self, clock):
        tracker = WakeTriggerTracker(threshold=0.5, clock=clock)
        _, v0 = tracker.snapshot()
        tracker.on_score(0.1, "a")
        assert tracker.snapshot()[1] == v0


class TestWaitForChange:
    def test_times_out_without_write(self):
        tracker = WakeTriggerTracker(threshold=0.5)
        _, version = tracker.snapshot()
        start = time.monotonic()
        tracker.wait_for_change(version, timeout_ms=50)
        assert time.monotonic() - start >= 0.04

    def test_wakes_on_write_from_other_thread(self):
        tracker = WakeTriggerTracker(threshold=0.5)
        _, version = tracker.snapshot()

        threading.Timer(0.02, tracker.on_score, args=(0.9, "a")).start()
        start = time.monotonic()
        tracker.wait_for_change(version, timeout_ms=5000)

        assert time.monotonic() - start < 2.0
        assert tracker.trigger is not None

    def test_returns_immediately_if_already_changed(self):
        tracker = WakeTriggerTracker(threshold=0.5)
        _, version = tracker.snapshot()
        tracker.on_score(0.9, "a")
        start = time.monotonic()
        tracker.wait_for_change(version, timeout_ms=5000)
        assert time.monotonic() - start < 0.5

    def test_close_releases_waiter(self):
        tracker = WakeTriggerTracker(threshold=0.5)
        _, version = tracker.snapshot()

        threading.Timer(0.02, tracker.close).start()
        start = time.monotonic()
        with pytest.raises(PipelineClosed):
            tracker.wait_for_change(version, timeout_ms=5000)
        assert time.monotonic() - start < 2.0

    def test_wait_after_close_raises(self):
        tracker = WakeTriggerTracker(threshold=0.5)
        tracker.close()
        assert tracker.closed
        with pytest.raises(PipelineClosed):
            tracker.wait_for_change(tracker.snapshot()[1], timeout_ms=10)
