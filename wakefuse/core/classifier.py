"""Speech segment classifier: correlates a finished VAD segment with the wake trigger.

The wake-sound classifier and the VAD run independently, so a trigger that
belongs to a segment can land shortly after speechend fires. classify()
absorbs that skew with a bounded wait on the tracker, then decides whether
the segment is discarded, transcribed as a sound-triggered command (with the
pre-trigger prefix trimmed), or transcribed for text wake-word matching.
"""

import logging
import math
from typing import Callable, Optional

from core.models import (
    REASON_TOO_SHORT,
    REASON_WAITING_FOR_WAKE_SOUND,
    ClassificationDecision,
    Discard,
    EngineConfig,
    SpeechSegment,
    Transcribe,
    WakeTrigger,
    monotonic_ms,
)
from core.tracker import WakeTriggerTracker

logger = logging.getLogger("wakefuse.classifier")

# Added to the computed wake-up delay so the strict "older than the delay" check holds on wake
_WAKE_EPSILON_MS = 1.0


def trim_samples_for(trigger: WakeTrigger, segment: SpeechSegment) -> int:
    """Number of leading samples that predate the trigger."""
    offset_ms = trigger.timestamp_ms - segment.started_at_ms
    return math.floor(offset_ms / 1000.0 * segment.sample_rate)


def decide(
    segment: SpeechSegment,
    trigger: Optional[WakeTrigger],
    now_ms: float,
    config: EngineConfig,
) -> ClassificationDecision:
    """Pure decision for a segment long enough to consider, given the trigger seen at `now_ms`."""
    time_since_trigger = now_ms - trigger.timestamp_ms if trigger is not None else math.inf

    # With a zero delay nothing is ever in session; kept as-is
    in_session = time_since_trigger < config.wakesound_delay_ms

    if in_session:
        audio = segment.samples
        if trigger.timestamp_ms >= segment.started_at_ms:
            trim = trim_samples_for(trigger, segment)
            if len(audio) > trim:
                audio = audio[trim:]
                if config.debug_wake_sound:
                    logger.debug(
                        "Trimmed %.0fms overlap from audio segment (%d samples)",
                        trigger.timestamp_ms - segment.started_at_ms,
                        trim,
                    )
        return Transcribe(audio=audio, via_sound=True)

    if not config.require_wake_sound:
        return Transcribe(audio=segment.samples, via_sound=False)

    if config.debug_wake_sound:
        logger.info("Skipping ASR (require_wake_sound is set, no wake sound detected)")
    return Discard(reason=REASON_WAITING_FOR_WAKE_SOUND)


class SegmentClassifier:
    """Turns SpeechSegments into ClassificationDecisions against a shared tracker."""

    def __init__(
        self,
        config: EngineConfig,
        tracker: WakeTriggerTracker,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self._config = config
        self._tracker = tracker
        self._clock = clock

    def classify(self, segment: SpeechSegment) -> ClassificationDecision:
        """Classify one segment. May block for up to config.sync_wait_ms.

        Raises PipelineClosed if the tracker is closed while waiting.
        """
        if len(segment) < self._config.min_segment_samples:
            return Discard(reason=REASON_TOO_SHORT)

        trigger = self.synchronize(segment.started_at_ms)
        return decide(segment, trigger, self._clock(), self._config)

    def synchronize(self, started_at_ms: float) -> Optional[WakeTrigger]:
        """Wait (bounded) for a trigger that could belong to a segment started at `started_at_ms`.

        Returns as soon as a trigger newer than the segment start exists, or an
        existing trigger is already older than the wake-sound delay. Otherwise
        sleeps on the tracker until a write, the moment the current trigger
        ages out, or the ceiling, whichever comes first.
        """
        delay_ms = self._config.wakesound_delay_ms
        deadline = self._clock() + self._config.sync_wait_ms

        while True:
            trigger, version = self._tracker.snapshot()
            now = self._clock()

            timeout = deadline - now
            if trigger is not None:
                if trigger.timestamp_ms > started_at_ms:
                    return trigger
                age = now - trigger.timestamp_ms
                if age > delay_ms:
                    return trigger
                timeout = min(timeout, delay_ms - age + _WAKE_EPSILON_MS)

            if deadline - now <= 0:
                return trigger

            self._tracker.wait_for_change(version, timeout)
