"""Voice activity detection: Silero speech probabilities and utterance segmentation."""

import logging
from collections import deque
from typing import Callable, Optional

import numpy as np

from perception.wake import to_int16

logger = logging.getLogger("wakefuse.vad")

# Negative threshold sits this far below the positive one (hysteresis)
NEGATIVE_THRESHOLD_OFFSET = 0.15


class SileroVAD:
    """Silero VAD (ONNX, shipped with openwakeword). Loaded lazily."""

    def __init__(self):
        self._model = None

    def load(self) -> bool:
        try:
            from openwakeword.vad import VAD

            self._model = VAD()
        except Exception as e:
            logger.error("Failed to load Silero VAD: %s", e)
            return False
        logger.info("Silero VAD loaded (ONNX)")
        return True

    @property
    def ready(self) -> bool:
        return self._model is not None

    def probability(self, frame: np.ndarray) -> float:
        """Speech probability for one frame (0.0 before load())."""
        if self._model is None:
            return 0.0
        return float(self._model.predict(to_int16(frame)))


class SpeechSegmenter:
    """Frame-level state machine that cuts continuous audio into utterances.

    A frame whose probability reaches the positive threshold starts speech.
    Speech ends after `redemption_frames` consecutive frames below the
    negative threshold; a positive frame in between resets that count. The
    finished segment is reported through on_speech_end, or through
    on_misfire if it held fewer than `min_speech_frames` speech frames.
    `pre_speech_pad_frames` frames preceding speech onset are kept.
    """

    def __init__(
        self,
        positive_threshold: float = 0.75,
        negative_threshold: Optional[float] = None,
        redemption_frames: int = 15,
        pre_speech_pad_frames: int = 1,
        min_speech_frames: int = 3,
        on_speech_start: Optional[Callable[[], None]] = None,
        on_speech_end: Optional[Callable[[np.ndarray], None]] = None,
        on_misfire: Optional[Callable[[], None]] = None,
    ):
        if negative_threshold is None:
            negative_threshold = max(positive_threshold - NEGATIVE_THRESHOLD_OFFSET, 0.0)
        self._positive = positive_threshold
        self._negative = negative_threshold
        self._redemption_frames = redemption_frames
        self._pre_speech_pad_frames = pre_speech_pad_frames
        self._min_speech_frames = min_speech_frames

        self._on_speech_start = on_speech_start
        self._on_speech_end = on_speech_end
        self._on_misfire = on_misfire

        self._speaking = False
        self._redemption_counter = 0
        # (frame, is_speech) while speaking; only the pre-speech pad otherwise
        self._buffer: deque[tuple[np.ndarray, bool]] = deque()

    @property
    def speaking(self) -> bool:
        return self._speaking

    def process(self, frame: np.ndarray, probability: float) -> None:
        """Advance the state machine by one frame."""
        is_speech = probability >= self._positive
        self._buffer.append((frame, is_speech))

        if is_speech and self._redemption_counter:
            self._redemption_counter = 0

        if is_speech and not self._speaking:
            self._speaking = True
            logger.debug("Speech start (p=%.2f)", probability)
            if self._on_speech_start:
                self._on_speech_start()

        if probability < self._negative and self._speaking:
            self._redemption_counter += 1
            if self._redemption_counter >= self._redemption_frames:
                self._end_segment()

        if not self._speaking:
            while len(self._buffer) > self._pre_speech_pad_frames:
                self._buffer.popleft()

    def _end_segment(self) -> None:
        frames = list(self._buffer)
        self._buffer.clear()
        self._redemption_counter = 0
        self._speaking = False

        speech_frames = sum(1 for _, is_speech in frames if is_speech)
        if speech_frames >= self._min_speech_frames:
            audio = np.concatenate([f for f, _ in frames])
            logger.debug("Speech end (%d frames, %d speech)", len(frames), speech_frames)
            if self._on_speech_end:
                self._on_speech_end(audio)
        else:
            logger.debug("VAD misfire (%d speech frames)", speech_frames)
            if self._on_misfire:
                self._on_misfire()

    def reset(self) -> None:
        """Drop any in-progress utterance without reporting it."""
        self._buffer.clear()
        self._redemption_counter = 0
        self._speaking = False
