"""Shared fixtures for the WakeFuse test suite.

No real audio, models or timers: segments are numpy arrays, the clock is a
settable counter in milliseconds, and STT replies are scripted.
"""

import numpy as np
import pytest

from core.models import EngineConfig, SpeechSegment
from perception.stt import STTResult


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ScriptedSTT:
    """STT provider returning canned replies in order.

    A str becomes an STTResult, None is returned as-is, an Exception is raised.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[np.ndarray] = []

    def transcribe(self, audio_data, sample_rate=16000):
        self.calls.append(audio_data)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            return None
        return STTResult(text=reply, language="en", duration_ms=1.0)


@pytest.fixture
def clock():
    return FakeClock(start=10_000.0)


@pytest.fixture
def make_segment():
    """Factory: make_segment(n_samples, started_at_ms) → SpeechSegment of ramp audio."""

    def _make(n_samples: int = 16000, started_at: float = 0.0, sample_rate: int = 16000) -> SpeechSegment:
        samples = np.arange(n_samples, dtype=np.float32) / max(n_samples, 1)
        return SpeechSegment(samples=samples, started_at_ms=started_at, sample_rate=sample_rate)

    return _make


@pytest.fixture
def make_config():
    """Factory for EngineConfig with test-friendly defaults (no synchronization wait)."""

    def _make(**overrides) -> EngineConfig:
        settings = dict(wake_words=("hey akari",), sync_wait_ms=0)
        settings.update(overrides)
        return EngineConfig(**settings)

    return _make


@pytest.fixture
def scripted_stt():
    return ScriptedSTT
