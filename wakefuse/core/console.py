"""Voice console: wires wake-sound scores, VAD boundaries and ASR into command events.

Producers (the audio processing thread) call on_wake_scores / on_speech_start /
on_speech_end / on_vad_misfire. Finished segments go onto a queue consumed by
one worker thread, which runs the classifier (including its synchronization
wait), the STT provider and the extractor. Wake-sound updates never pass
through that queue, so the tracker stays writable while the worker waits.
"""

import logging
import queue
import threading
import uuid
from typing import Callable, Optional, Sequence

import numpy as np

from core.classifier import SegmentClassifier
from core.extractor import CommandExtractor
from core.models import (
    REASON_EMPTY_RECOGNITION,
    REASON_VAD_MISFIRE,
    Accepted,
    Discard,
    EngineConfig,
    PipelineClosed,
    SpeechSegment,
    WakeSoundEvent,
    monotonic_ms,
)
from core.tracker import WakeTriggerTracker
from utils.latency_tracker import LatencyTracker

logger = logging.getLogger("wakefuse.console")

# Scores above this are logged in debug mode even when they don't trigger
_DEBUG_SCORE_FLOOR = 0.5

_STOP = object()  # worker queue sentinel


class VoiceConsole:
    """Fuses wake sound, VAD and ASR into `result` / `speechdiscarded` / `error` events.

    Usage:
        console = VoiceConsole(EngineConfig(wake_words=("hey akari",)), stt_provider)
        console.set_callbacks(on_result=print, on_speech_discarded=print)
        console.start()
        ...  # feed on_wake_scores / on_speech_start / on_speech_end
        console.stop()
    """

    def __init__(
        self,
        config: EngineConfig,
        stt_provider,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self._config = config
        self._stt = stt_provider
        self._clock = clock

        self._tracker = WakeTriggerTracker(threshold=config.wakesound_threshold, clock=clock)
        self._classifier = SegmentClassifier(config, self._tracker, clock=clock)
        self._extractor = CommandExtractor(config)
        self._latency = LatencyTracker()

        self._segments: queue.Queue = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._running = False
        self._closed = False

        # Start of the utterance currently being captured by the VAD
        self._speech_started_at: Optional[float] = None

        # Callbacks
        self._on_ready: Optional[Callable[[], None]] = None
        self._on_speech_start: Optional[Callable[[], None]] = None
        self._on_speech_end: Optional[Callable[[], None]] = None
        self._on_wake_sound: Optional[Callable[[WakeSoundEvent], None]] = None
        self._on_result: Optional[Callable[[Accepted], None]] = None
        self._on_speech_discarded: Optional[Callable[[str], None]] = None
        self._on_error: Optional[Callable[[str], None]] = None

    @property
    def tracker(self) -> WakeTriggerTracker:
        return self._tracker

    @property
    def config(self) -> EngineConfig:
        return self._config

    def set_callbacks(
        self,
        on_ready: Optional[Callable[[], None]] = None,
        on_speech_start: Optional[Callable[[], None]] = None,
        on_speech_end: Optional[Callable[[], None]] = None,
        on_wake_sound: Optional[Callable[[WakeSoundEvent], None]] = None,
        on_result: Optional[Callable[[Accepted], None]] = None,
        on_speech_discarded: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        """Register callback functions. Omitted arguments keep their current handler."""
        if on_ready is not None:
            self._on_ready = on_ready
        if on_speech_start is not None:
            self._on_speech_start = on_speech_start
        if on_speech_end is not None:
            self._on_speech_end = on_speech_end
        if on_wake_sound is not None:
            self._on_wake_sound = on_wake_sound
        if on_result is not None:
            self._on_result = on_result
        if on_speech_discarded is not None:
            self._on_speech_discarded = on_speech_discarded
        if on_error is not None:
            self._on_error = on_error

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the segment worker and announce readiness."""
        if self._running:
            return
        if self._closed:
            raise RuntimeError("VoiceConsole cannot be restarted after stop()")
        self._running = True
        self._worker = threading.Thread(target=self._worker_loop, daemon=True, name="segment-worker")
        self._worker.start()

        logger.info("Voice console ready.")
        logger.info("Wake words: %s", ", ".join(self._config.wake_words) or "(none)")
        logger.info(
            "Wake sound: threshold=%.2f index=%d delay=%.0fms require=%s",
            self._config.wakesound_threshold,
            self._config.wakesound_index,
            self._config.wakesound_delay_ms,
            self._config.require_wake_sound,
        )
        self._emit(self._on_ready)

    def stop(self, timeout: float = 2.0) -> None:
        """Abandon any pending synchronization wait, stop the worker, silence all events."""
        if self._closed:
            return
        logger.info("Shutting down voice console...")
        self._closed = True
        self._running = False
        self._tracker.close()
        self._segments.put(_STOP)
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                logger.warning("Segment worker did not exit within %.1fs", timeout)
        logger.info("Voice console stopped.")

    @property
    def running(self) -> bool:
        return self._running

    # ── Producer inputs ───────────────────────────────────────────────

    def on_wake_scores(self, scores: Sequence[float], labels: Sequence[str]) -> Optional[WakeSoundEvent]:
        """Feed one classifier output vector. Returns the wakesound event if it fired."""
        if self._closed:
            return None
        index = self._config.wakesound_index
        if index >= len(scores):
            logger.warning("Wake sound index %d out of range for %d classes", index, len(scores))
            return None
        score = float(scores[index])
        label = labels[index] if index < len(labels) else str(index)

        if self._config.debug_wake_sound and score > _DEBUG_SCORE_FLOOR:
            logger.debug("Wake sound score: %.4f (threshold: %.2f)", score, self._config.wakesound_threshold)

        event = self._tracker.on_score(score, label)
        if event is not None:
            if self._config.debug_wake_sound:
                logger.info("Wake sound detected with score: %.4f", score)
            self._emit(self._on_wake_sound, event)
        return event

    def on_speech_start(self) -> None:
        if self._closed:
            return
        self._speech_started_at = self._clock()
        self._emit(self._on_speech_start)

    def on_speech_end(self, audio: np.ndarray) -> None:
        """Close the current utterance and hand it to the segment worker."""
        if self._closed:
            return
        self._emit(self._on_speech_end)
        started_at = self._speech_started_at if self._speech_started_at is not None else self._clock()
        self._speech_started_at = None
        segment = SpeechSegment(
            samples=np.asarray(audio, dtype=np.float32),
            started_at_ms=started_at,
            sample_rate=self._config.sample_rate,
        )
        self._segments.put(segment)

    def on_vad_misfire(self) -> None:
        if self._closed:
            return
        self._speech_started_at = None
        self._emit(self._on_speech_discarded, REASON_VAD_MISFIRE)

    # ── Segment processing ────────────────────────────────────────────

    def _worker_loop(self) -> None:
        while True:
            segment = self._segments.get()
            if segment is _STOP:
                break
            try:
                self.process_segment(segment)
            except Exception as e:
                # One bad segment must not stop the pipeline
                logger.error("Segment processing error: %s", e, exc_info=True)

    def process_segment(self, segment: SpeechSegment) -> None:
        """Classify, transcribe and parse one segment, emitting the outcome. Blocking."""
        if self._closed:
            return
        segment_id = str(uuid.uuid4())
        self._latency.begin(segment_id)

        try:
            decision = self._classifier.classify(segment)
        except PipelineClosed:
            logger.debug("Synchronization wait abandoned (console stopped)")
            self._latency.discard(segment_id)
            return
        self._latency.mark(segment_id, "classified")

        if self._closed:
            self._latency.discard(segment_id)
            return

        if isinstance(decision, Discard):
            self._latency.discard(segment_id)
            self._emit(self._on_speech_discarded, decision.reason)
            return

        self._transcribe_and_parse(segment_id, decision.audio, decision.via_sound)

    def _transcribe_and_parse(self, segment_id: str, audio: np.ndarray, via_sound: bool) -> None:
        try:
            result = self._stt.transcribe(audio, self._config.sample_rate)
        except Exception as e:
            logger.error("ASR transcription failed: %s", e)
            self._latency.discard(segment_id)
            self._emit(self._on_error, f"ASR Fail: {e}")
            return
        self._latency.mark(segment_id, "stt_done")

        text = result.text if result else ""
        if not text:
            self._latency.discard(segment_id)
            self._emit(self._on_speech_discarded, REASON_EMPTY_RECOGNITION)
            return

        command = self._extractor.extract(text, via_sound)
        self._latency.mark(segment_id, "parsed")
        self._latency.finish(segment_id)

        if isinstance(command, Accepted):
            logger.info(
                "Command%s: '%s' (heard: '%s')",
                " (wake sound)" if via_sound else "",
                command.text,
                command.original,
            )
            # One trigger authorizes exactly one command
            self._tracker.clear()
            self._emit(self._on_result, command)
        else:
            self._emit(self._on_speech_discarded, command.detail)

    def latency_stats(self) -> dict:
        return self._latency.stats()

    def _emit(self, handler: Optional[Callable], *args) -> None:
        """Invoke a callback unless stopped. Handler errors are logged, never raised."""
        if handler is None or self._closed:
            return
        try:
            handler(*args)
        except Exception as e:
            logger.error("Event handler %s failed: %s", getattr(handler, "__name__", handler), e, exc_info=True)
