"""STT (Speech-to-Text) provider abstraction.

Supports multiple backends (Groq Whisper API, local faster-whisper) with
automatic per-request fallback when the primary provider fails. Providers
raise TranscriptionError on failure; an empty string means nothing was
recognized.
"""

import io
import logging
import struct
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np

from core.models import DEFAULT_SAMPLE_RATE, TranscriptionError

logger = logging.getLogger("wakefuse.stt")


@dataclass
class STTResult:
    """Result from a speech-to-text transcription."""

    text: str
    language: str
    duration_ms: float  # how long transcription took


class STTProvider(Protocol):
    """Protocol for speech-to-text providers."""

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        """Transcribe audio. Raises TranscriptionError on failure."""
        ...


def build_prompt(wake_words) -> Optional[str]:
    """Whisper initial prompt listing the wake words so they are spelled consistently."""
    words = [w for w in wake_words if w.strip()]
    if not words:
        return None
    return "Voice commands. Wake words: " + ", ".join(words) + "."


class LocalWhisperProvider:
    """Local faster-whisper STT provider with lazy model loading."""

    def __init__(self, model_name: str = "base.en", prompt: Optional[str] = None):
        self._model_name = model_name
        self._prompt = prompt
        self._model = None  # Lazy-loaded on first transcribe()

    def _ensure_model(self) -> None:
        """Load the Whisper model if not already loaded."""
        if self._model is not None:
            return
        try:
            from faster_whisper import WhisperModel

            logger.info("Loading Whisper model (%s) via faster-whisper...", self._model_name)
            self._model = WhisperModel(
                self._model_name,
                device="cpu",
                compute_type="int8",
            )
            logger.info("Whisper model loaded (faster-whisper, int8)")
        except Exception as e:
            raise TranscriptionError(f"failed to load Whisper model {self._model_name!r}: {e}") from e

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        self._ensure_model()

        start = time.monotonic()
        try:
            segments, info = self._model.transcribe(
                np.asarray(audio_data, dtype=np.float32),
                beam_size=5,
                language=None,
                vad_filter=False,  # segments already come from the VAD
                initial_prompt=self._prompt,
            )
            text = " ".join(seg.text for seg in segments).strip()
        except Exception as e:
            raise TranscriptionError(str(e)) from e

        lang = info.language if info else "en"
        duration_ms = (time.monotonic() - start) * 1000
        logger.info("Transcription [%s] (local, %.0fms): %s", lang, duration_ms, text)
        return STTResult(text=text, language=lang, duration_ms=duration_ms)


class GroqWhisperProvider:
    """Groq Whisper API STT provider."""

    def __init__(self, api_key: str, model: str = "whisper-large-v3-turbo", prompt: Optional[str] = None):
        from groq import Groq

        self._client = Groq(api_key=api_key)
        self._model = model
        self._prompt = prompt
        logger.info("STT: Groq API (model: %s)", model)

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        start = time.monotonic()
        wav_bytes = _audio_to_wav(audio_data, sample_rate)
        kwargs = {}
        if self._prompt:
            kwargs["prompt"] = self._prompt
        try:
            response = self._client.audio.transcriptions.create(
                file=("audio.wav", wav_bytes),
                model=self._model,
                response_format="verbose_json",
                **kwargs,
            )
        except Exception as e:
            raise TranscriptionError(str(e)) from e

        text = response.text.strip() if response.text else ""
        lang = getattr(response, "language", "en") or "en"
        duration_ms = (time.monotonic() - start) * 1000
        logger.info("Transcription [%s] (groq, %.0fms): %s", lang, duration_ms, text)
        return STTResult(text=text, language=lang, duration_ms=duration_ms)


class FallbackSTTProvider:
    """Wraps a primary provider with automatic fallback to a secondary."""

    def __init__(self, primary: STTProvider, fallback: STTProvider):
        self._primary = primary
        self._fallback = fallback

    def transcribe(self, audio_data: np.ndarray, sample_rate: int = DEFAULT_SAMPLE_RATE) -> Optional[STTResult]:
        try:
            return self._primary.transcribe(audio_data, sample_rate)
        except TranscriptionError as e:
            logger.warning("Primary STT failed (%s), falling back to secondary provider", e)
        return self._fallback.transcribe(audio_data, sample_rate)


def create_stt_provider(prompt: Optional[str] = None) -> STTProvider:
    """Factory: create the appropriate STT provider based on config."""
    from config import GROQ_API_KEY, GROQ_WHISPER_MODEL, STT_FALLBACK_ENABLED, STT_PROVIDER, WHISPER_MODEL

    if STT_PROVIDER == "groq" and GROQ_API_KEY:
        try:
            primary = GroqWhisperProvider(api_key=GROQ_API_KEY, model=GROQ_WHISPER_MODEL, prompt=prompt)
            if STT_FALLBACK_ENABLED:
                fallback = LocalWhisperProvider(model_name=WHISPER_MODEL, prompt=prompt)
                return FallbackSTTProvider(primary, fallback)
            return primary
        except Exception as e:
            logger.error("Failed to initialize Groq STT: %s. Falling back to local.", e)

    return LocalWhisperProvider(model_name=WHISPER_MODEL, prompt=prompt)


def _audio_to_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """Convert float32 numpy audio to 16-bit PCM WAV bytes."""
    pcm = (np.asarray(audio, dtype=np.float32) * 32767).clip(-32768, 32767).astype(np.int16)
    buf = io.BytesIO()
    data_size = len(pcm) * 2  # 2 bytes per int16 sample
    buf.write(b"RIFF")
    buf.write(struct.pack("<I", 36 + data_size))
    buf.write(b"WAVE")
    buf.write(b"fmt ")
    buf.write(struct.pack("<I", 16))  # fmt chunk size
    buf.write(struct.pack("<H", 1))  # PCM format
    buf.write(struct.pack("<H", 1))  # mono
    buf.write(struct.pack("<I", sample_rate))
    buf.write(struct.pack("<I", sample_rate * 2))  # byte rate
    buf.write(struct.pack("<H", 2))  # block align
    buf.write(struct.pack("<H", 16))  # bits per sample
    buf.write(b"data")
    buf.write(struct.pack("<I", data_size))
    buf.write(pcm.tobytes())
    return buf.getvalue()
