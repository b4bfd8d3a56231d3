import os

from dotenv import load_dotenv

from core.models import EngineConfig

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


# Wake words (text triggers), comma-separated, matched in this order
WAKE_WORDS = [w.strip() for w in os.getenv("WAKE_WORDS", "hey akari").split(",") if w.strip()]

# Wake sound (openwakeword). Comma-separated model names or .onnx paths; empty disables the channel.
# Pretrained names: "alexa", "hey_jarvis", "hey_mycroft", "hey_rhasspy", "timer", "weather"
WAKESOUND_MODELS = [m.strip() for m in os.getenv("WAKESOUND_MODELS", "").split(",") if m.strip()]
WAKESOUND_THRESHOLD = float(os.getenv("WAKESOUND_THRESHOLD", "0.75"))
WAKESOUND_INDEX = int(os.getenv("WAKESOUND_INDEX", "0"))  # Which model's score triggers (order of WAKESOUND_MODELS)
WAKESOUND_DELAY_MS = float(os.getenv("WAKESOUND_DELAY_MS", "0"))  # Session window after a wake sound; 0 = never in session
REQUIRE_WAKE_SOUND = _env_bool("REQUIRE_WAKE_SOUND", "false")  # Skip ASR entirely without a wake sound
DEBUG_WAKE_SOUND = _env_bool("DEBUG_WAKE_SOUND", "false")  # Verbose scores, raw text in discards, library logs

# Command text
CLEANUP = _env_bool("CLEANUP", "true")  # Strip punctuation except + - * / ( ) .

# Voice Activity Detection (Silero)
VAD_THRESHOLD = float(os.getenv("VAD_THRESHOLD", "0.75"))
VAD_REDEMPTION_FRAMES = int(os.getenv("VAD_REDEMPTION_FRAMES", "15"))  # 15 × 80ms of quiet ends an utterance
VAD_MIN_SPEECH_FRAMES = 3  # Fewer speech frames than this = misfire
VAD_PRE_SPEECH_PAD_FRAMES = 1

# Segment handling
MIN_SEGMENT_SAMPLES = 2000  # ~125ms at 16kHz; shorter segments are never transcribed
SYNC_WAIT_MS = 600  # Max wait for a late wake sound after speechend

# Audio devices (sounddevice index, or None for system default)
# Run `python -m sounddevice` to list available devices and their indices.
AUDIO_INPUT_DEVICE = int(os.getenv("AUDIO_INPUT_DEVICE")) if os.getenv("AUDIO_INPUT_DEVICE") else None

# Speech-to-Text
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_WHISPER_MODEL = "whisper-large-v3-turbo"  # Fast + accurate. Alt: "whisper-large-v3"
STT_PROVIDER = os.getenv("STT_PROVIDER", "local")  # "groq" (API) or "local" (faster-whisper on CPU)
STT_FALLBACK_ENABLED = True  # Fall back to local Whisper if Groq fails (per-request)
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "base.en")  # Only used by the local provider


def engine_config(**overrides) -> EngineConfig:
    """EngineConfig from the settings above; keyword arguments win over env values."""
    settings = dict(
        wake_words=tuple(WAKE_WORDS),
        wakesound_threshold=WAKESOUND_THRESHOLD,
        wakesound_index=WAKESOUND_INDEX,
        wakesound_delay_ms=WAKESOUND_DELAY_MS,
        cleanup=CLEANUP,
        require_wake_sound=REQUIRE_WAKE_SOUND,
        debug_wake_sound=DEBUG_WAKE_SOUND,
        min_segment_samples=MIN_SEGMENT_SAMPLES,
        sync_wait_ms=SYNC_WAIT_MS,
    )
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return EngineConfig(**settings)
