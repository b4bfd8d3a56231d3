"""Data model shared by the tracker, classifier, extractor and console.

Timestamps are milliseconds on the console clock (monotonic by default).
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

DEFAULT_SAMPLE_RATE = 16000

# Raw scores above this come from an unnormalized classifier output, not a real detection
WAKESOUND_SCORE_CEILING = 1.62

# Discard reasons surfaced through the speechdiscarded event
REASON_TOO_SHORT = "(Audio Too Short)"
REASON_WAITING_FOR_WAKE_SOUND = "(Waiting for Wake Sound)"
REASON_EMPTY_RECOGNITION = "(Empty Recognition)"
REASON_NO_WAKE_WORD = "(No Wake Word Detected)"
REASON_VAD_MISFIRE = "(VAD Misfire)"


def monotonic_ms() -> float:
    """Default console clock."""
    return time.monotonic() * 1000.0


class PipelineClosed(Exception):
    """Raised inside a pending wait when the console shuts down."""


class TranscriptionError(Exception):
    """ASR invocation failed."""


@dataclass(frozen=True)
class WakeTrigger:
    timestamp_ms: float
    score: float


@dataclass(frozen=True)
class WakeSoundEvent:
    """Payload of the wakesound event."""

    score: float
    label: str
    timestamp_ms: float


@dataclass(frozen=True)
class SpeechSegment:
    """One VAD utterance: speechstart → speechend."""

    samples: np.ndarray
    started_at_ms: float
    sample_rate: int = DEFAULT_SAMPLE_RATE

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration_ms(self) -> float:
        return len(self.samples) / self.sample_rate * 1000.0


@dataclass(frozen=True)
class Discard:
    reason: str


@dataclass(frozen=True)
class Transcribe:
    audio: np.ndarray
    via_sound: bool


ClassificationDecision = Union[Discard, Transcribe]


@dataclass(frozen=True)
class Rejected:
    detail: str


@dataclass(frozen=True)
class Accepted:
    text: str  # cleaned, upper-cased command
    original: str  # raw transcription
    via_sound: bool
    wake_word: Optional[str] = None


CommandResult = Union[Rejected, Accepted]


@dataclass(frozen=True)
class EngineConfig:
    """Settings for one console instance. Never mutated after construction."""

    wake_words: tuple[str, ...] = field(default_factory=tuple)
    wakesound_threshold: float = 0.75
    wakesound_index: int = 2
    wakesound_delay_ms: float = 0.0
    cleanup: bool = True
    require_wake_sound: bool = False
    debug_wake_sound: bool = False
    min_segment_samples: int = 2000  # ~125ms at 16kHz
    sync_wait_ms: float = 600.0
    sample_rate: int = DEFAULT_SAMPLE_RATE

    def __post_init__(self):
        # Lists from config/argparse are stored as a tuple; a bare string is one wake word
        wake_words = (self.wake_words,) if isinstance(self.wake_words, str) else tuple(self.wake_words)
        object.__setattr__(self, "wake_words", wake_words)
        if self.wakesound_delay_ms < 0:
            raise ValueError(f"wakesound_delay_ms must be >= 0, got {self.wakesound_delay_ms}")
        if self.wakesound_index < 0:
            raise ValueError(f"wakesound_index must be >= 0, got {self.wakesound_index}")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.sync_wait_ms < 0:
            raise ValueError(f"sync_wait_ms must be >= 0, got {self.sync_wait_ms}")
