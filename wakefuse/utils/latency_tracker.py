"""Latency instrumentation for the segment pipeline.

One trace per VAD segment, keyed by a segment ID. Each console owns its own
tracker, so several pipelines can run side by side.

Event timeline for one segment:
    speech_end → classified → stt_done → parsed

Computed stages:
    sync:  speech_end → classified  (0-600ms wake-sound synchronization wait)
    stt:   classified → stt_done    (Groq ~200-600ms, local ~1-3s)
    parse: stt_done → parsed        (<1ms)
    e2e:   speech_end → parsed
"""

import logging
import statistics
import threading
import time
from collections import deque
from typing import Optional

logger = logging.getLogger("wakefuse.latency")

# Ordered stage definitions: (name, start_event, end_event)
STAGES = [
    ("sync", "speech_end", "classified"),
    ("stt", "classified", "stt_done"),
    ("parse", "stt_done", "parsed"),
    ("e2e", "speech_end", "parsed"),
]


class SegmentTrace:
    """Timing marks for one segment."""

    __slots__ = ("id", "marks", "created_at")

    def __init__(self, segment_id: str):
        self.id = segment_id
        self.marks: dict[str, float] = {}
        self.created_at = time.monotonic()

    def mark(self, event: str) -> None:
        self.marks[event] = time.monotonic()

    def elapsed(self, start: str, end: str) -> Optional[float]:
        """Return elapsed time in ms between two marks, or None if either is missing."""
        s = self.marks.get(start)
        e = self.marks.get(end)
        if s is not None and e is not None:
            return (e - s) * 1000
        return None

    def summary(self) -> dict:
        """Return every stage duration that has both marks, in ms."""
        stages = {}
        for name, start, end in STAGES:
            val = self.elapsed(start, end)
            if val is not None:
                stages[name] = round(val, 1)
        return stages


class LatencyTracker:
    """Per-console latency tracker. Thread-safe."""

    def __init__(self, history: int = 100):
        self._lock = threading.Lock()
        self._active: dict[str, SegmentTrace] = {}
        self._stage_buffers: dict[str, deque] = {name: deque(maxlen=history) for name, _, _ in STAGES}
        self._segment_count = 0

    def begin(self, segment_id: str) -> None:
        """Start tracking a segment (marks speech_end)."""
        trace = SegmentTrace(segment_id)
        trace.mark("speech_end")
        with self._lock:
            self._active[segment_id] = trace

    def mark(self, segment_id: str, event: str) -> None:
        with self._lock:
            trace = self._active.get(segment_id)
        if trace:
            trace.mark(event)

    def finish(self, segment_id: str) -> Optional[dict]:
        """Close a trace, fold its stages into the stats and log the breakdown."""
        with self._lock:
            trace = self._active.pop(segment_id, None)
            if not trace:
                return None
            summary = trace.summary()
            self._segment_count += 1
            for name, buf in self._stage_buffers.items():
                if name in summary:
                    buf.append(summary[name])

        parts = " | ".join(f"{k}={v:.0f}ms" for k, v in summary.items())
        logger.info("[latency] %s: %s", segment_id[:8], parts)
        return summary

    def discard(self, segment_id: str) -> None:
        """Drop a trace without recording it (segment discarded before transcription)."""
        with self._lock:
            self._active.pop(segment_id, None)

    def stats(self) -> dict:
        """Return avg, p50, p95 and count for each stage seen so far."""
        with self._lock:
            result = {}
            for name, buf in self._stage_buffers.items():
                if buf:
                    sorted_vals = sorted(buf)
                    n = len(sorted_vals)
                    result[name] = {
                        "avg": round(statistics.mean(sorted_vals)),
                        "p50": round(sorted_vals[n // 2]),
                        "p95": round(sorted_vals[min(int(n * 0.95), n - 1)]),
                        "count": n,
                    }
            result["segment_count"] = self._segment_count
            return result

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)
