"""Wake trigger tracker: holds the newest wake-sound detection and nothing else.

The wake-sound classifier writes from the audio processing thread while the
segment worker reads (and waits on) the same slot, so every access goes
through one condition variable. Last write wins; there is no queue of
pending triggers.
"""

import logging
import threading
from typing import Callable, Optional

from core.models import (
    WAKESOUND_SCORE_CEILING,
    PipelineClosed,
    WakeSoundEvent,
    WakeTrigger,
    monotonic_ms,
)

logger = logging.getLogger("wakefuse.tracker")


class WakeTriggerTracker:
    """Single-slot store for the latest qualifying wake-sound score.

    Usage:
        tracker = WakeTriggerTracker(threshold=0.75)
        event = tracker.on_score(0.91, "clap")  # None if the score doesn't qualify
        trigger, version = tracker.snapshot()
        tracker.wait_for_change(version, timeout_ms=100)  # wakes on next write or close()
        tracker.clear()  # after a command is accepted
    """

    def __init__(
        self,
        threshold: float,
        score_ceiling: float = WAKESOUND_SCORE_CEILING,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self._threshold = threshold
        self._score_ceiling = score_ceiling
        self._clock = clock

        self._cond = threading.Condition()
        self._trigger: Optional[WakeTrigger] = None
        self._version = 0  # bumped on every write and clear
        self._closed = False

    def on_score(self, score: float, label: str) -> Optional[WakeSoundEvent]:
        """Record a new trigger if `score` qualifies. Returns the event to publish, or None."""
        if not (self._threshold < score < self._score_ceiling):
            return None

        with self._cond:
            trigger = WakeTrigger(timestamp_ms=self._clock(), score=float(score))
            self._trigger = trigger
            self._version += 1
            self._cond.notify_all()

        return WakeSoundEvent(score=trigger.score, label=label, timestamp_ms=trigger.timestamp_ms)

    def snapshot(self) -> tuple[Optional[WakeTrigger], int]:
        """Current trigger (None if absent) and the write version it belongs to."""
        with self._cond:
            return self._trigger, self._version

    @property
    def trigger(self) -> Optional[WakeTrigger]:
        with self._cond:
            return self._trigger

    def clear(self) -> None:
        """Drop the current trigger. Only a new qualifying score re-arms the tracker."""
        with self._cond:
            if self._trigger is not None:
                logger.debug("Wake trigger cleared (score=%.4f)", self._trigger.score)
            self._trigger = None
            self._version += 1
            self._cond.notify_all()

    def wait_for_change(self, version: int, timeout_ms: float) -> None:
        """Block until the tracker moves past `version`, it is closed, or the timeout expires.

        Raises PipelineClosed if the tracker is (or becomes) closed.
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._closed or self._version != version,
                timeout=max(timeout_ms, 0.0) / 1000.0,
            )
            if self._closed:
                raise PipelineClosed()

    def close(self) -> None:
        """Release every pending wait. Further waits raise PipelineClosed."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed
