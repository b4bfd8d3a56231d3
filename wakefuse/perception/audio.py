import logging
import threading
import time
from collections import deque
from typing import Optional

import numpy as np

from perception.vad import SileroVAD, SpeechSegmenter
from perception.wake import FRAME_SAMPLES, WakeSoundDetector

logger = logging.getLogger("wakefuse.audio")

SAMPLE_RATE = 16000  # openwakeword, Silero and Whisper all want 16kHz


class AudioListener:
    """Microphone input feeding the wake-sound detector and the VAD.

    Opens a 16kHz mono audio stream via sounddevice. The PortAudio callback
    only buffers frames; a background thread slices them into 80ms frames and:
    1. Wake sound: scores each frame and forwards the vector to the console
       (continuous, independent of speech).
    2. VAD: runs Silero on each frame and drives the SpeechSegmenter, whose
       start/end/misfire callbacks go straight to the console.
    Segment classification and ASR happen on the console's own worker, so
    this loop never blocks on them.
    """

    def __init__(
        self,
        console,
        wake_detector: Optional[WakeSoundDetector] = None,
        vad: Optional[SileroVAD] = None,
        segmenter: Optional[SpeechSegmenter] = None,
        input_device: Optional[int] = None,
    ):
        self._console = console
        self._wake = wake_detector
        self._vad = vad if vad is not None else SileroVAD()
        self._segmenter = segmenter if segmenter is not None else SpeechSegmenter(
            on_speech_start=console.on_speech_start,
            on_speech_end=console.on_speech_end,
            on_misfire=console.on_vad_misfire,
        )
        self._input_device = input_device

        self._stream = None
        self._running = False
        self._paused = False
        self._reset_pending = False  # set by pause(), applied on the processing thread
        self._thread: Optional[threading.Thread] = None

        # Filled by the PortAudio callback, drained by the processing loop
        self._audio_buffer: deque[np.ndarray] = deque(maxlen=int(SAMPLE_RATE * 30 / FRAME_SAMPLES))

        # Audio level for status logging (updated every callback)
        self._current_audio_level = 0.0

    def start(self) -> bool:
        """Load the VAD, defer the wake sound model to background, open audio stream."""
        # 1. VAD is required: without it nothing ever reaches the console
        if not self._vad.ready and not self._vad.load():
            return False

        # 2. Wake sound model loads in the background; scoring starts once ready
        if self._wake is not None and not self._wake.ready:
            threading.Thread(target=self._load_wake_background, daemon=True, name="wake-loader").start()

        # 3. Open audio stream
        try:
            import sounddevice as sd

            self._stream = sd.InputStream(
                device=self._input_device,
                samplerate=SAMPLE_RATE,
                channels=1,
                dtype="float32",
                blocksize=FRAME_SAMPLES,
                callback=self._audio_callback,
            )
            self._stream.start()
            logger.info("Audio stream opened (16kHz mono)")
        except Exception as e:
            logger.error("Failed to open audio stream: %s", e)
            return False

        # 4. Start processing thread
        self._running = True
        self._thread = threading.Thread(target=self._processing_loop, daemon=True, name="audio-processor")
        self._thread.start()
        return True

    def _load_wake_background(self):
        if not self._wake.load():
            logger.warning("Wake sound detection disabled (model failed to load)")

    @property
    def audio_level(self) -> float:
        return self._current_audio_level

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status):
        """sounddevice callback, runs on the PortAudio thread. Keep minimal."""
        if status:
            logger.debug("Audio status: %s", status)
        chunk = indata[:, 0].copy()  # Mono float32
        self._audio_buffer.append(chunk)
        self._current_audio_level = float(np.sqrt(np.mean(chunk**2)))

    def _processing_loop(self):
        """Main processing loop running in background thread."""
        pending = np.zeros(0, dtype=np.float32)

        while self._running:
            chunks = []
            while self._audio_buffer:
                try:
                    chunks.append(self._audio_buffer.popleft())
                except IndexError:
                    break

            if not chunks:
                time.sleep(0.01)
                continue

            pending = np.concatenate([pending, *chunks])

            while len(pending) >= FRAME_SAMPLES:
                frame = pending[:FRAME_SAMPLES]
                pending = pending[FRAME_SAMPLES:]
                try:
                    self.process_frame(frame)
                except Exception as e:
                    logger.error("Frame processing error: %s", e, exc_info=True)

    def process_frame(self, frame: np.ndarray) -> None:
        """Run one 80ms frame through wake sound scoring and VAD.

        Called only from the processing thread, which is the sole owner of
        the segmenter; a pause requested elsewhere is applied here.
        """
        if self._reset_pending:
            self._reset_pending = False
            self._segmenter.reset()

        if self._paused:
            return

        if self._wake is not None and self._wake.ready:
            scores = self._wake.score(frame)
            if scores:
                self._console.on_wake_scores(scores, self._wake.labels)

        self._segmenter.process(frame, self._vad.probability(frame))

    def pause(self) -> None:
        """Stop feeding frames (stream stays open). Any half-captured utterance is dropped.

        The segmenter reset runs on the processing thread before its next frame.
        """
        self._paused = True
        self._reset_pending = True
        logger.info("Audio listener paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Audio listener resumed")

    @property
    def paused(self) -> bool:
        return self._paused

    def stop(self):
        """Stop audio stream and cleanup."""
        self._running = False
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        logger.info("Audio listener stopped")
