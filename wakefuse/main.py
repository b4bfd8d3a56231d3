"""
WakeFuse voice console: command-line runner.

Pipeline:
                 +--------------------+
            +--->| Wake sound (OWW)   |---- scores ----+
            |    +--------------------+                v
+--------+  |                                  +---------------+    +-----------+
|  Mic   |--+                                  | VoiceConsole  |--->| on_result |
+--------+  |    +--------------------+        | tracker       |    +-----------+
            +--->| Silero VAD         |------->| classifier    |
                 | + SpeechSegmenter  | segs   | STT/extractor |
                 +--------------------+        +---------------+

Heavy imports (sounddevice, openwakeword, faster-whisper, groq) are deferred
to start() so `wakefuse --help` responds instantly.
"""

import logging
import signal
import sys
import threading
import time
from typing import Optional

# Configure logging EARLY so model-loading progress is visible
logging.basicConfig(
    level=logging.INFO,
    format="[WakeFuse] %(asctime)s %(name)s %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("wakefuse")


# Catch unhandled exceptions in daemon threads so they don't die silently
def _daemon_thread_exception_hook(args):
    logger.error(
        "Unhandled exception in thread '%s': %s",
        args.thread.name if args.thread else "unknown",
        args.exc_value,
        exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
    )


threading.excepthook = _daemon_thread_exception_hook

from core.console import VoiceConsole  # noqa: E402  (stdlib + numpy only)
from core.models import Accepted, EngineConfig, WakeSoundEvent  # noqa: E402
from utils.library_logs import LibraryLogSilencer  # noqa: E402


class WakeFuse:
    """Owns one console and its microphone runtime for the lifetime of the process."""

    def __init__(self, config: EngineConfig):
        self._config = config
        self._running = False
        self._silencer = LibraryLogSilencer()
        self.console: Optional[VoiceConsole] = None
        self.audio = None

    def start(self) -> bool:
        """Build STT, console and audio listener. Returns False if anything essential fails."""
        import config as settings

        self._log_banner("Welcome to WakeFuse!")
        if not self._config.debug_wake_sound:
            self._silencer.install()
        else:
            logging.getLogger("wakefuse").setLevel(logging.DEBUG)

        # ── 1. Speech-to-text ─────────────────────────────────────────
        from perception.stt import build_prompt, create_stt_provider

        try:
            stt = create_stt_provider(prompt=build_prompt(self._config.wake_words))
        except Exception as e:
            logger.error("Failed to initialize STT provider: %s", e)
            return False

        # ── 2. Console ────────────────────────────────────────────────
        self.console = VoiceConsole(self._config, stt)
        self.console.set_callbacks(
            on_wake_sound=self._on_wake_sound,
            on_result=self._on_result,
            on_speech_discarded=self._on_speech_discarded,
            on_error=self._on_error,
        )

        # ── 3. Audio (wake sound model loads in the background) ───────
        from perception.audio import AudioListener
        from perception.vad import SpeechSegmenter
        from perception.wake import WakeSoundDetector

        wake = None
        if settings.WAKESOUND_MODELS:
            wake = WakeSoundDetector(
                settings.WAKESOUND_MODELS,
                target_index=self._config.wakesound_index,
                threshold=self._config.wakesound_threshold,
            )
        segmenter = SpeechSegmenter(
            positive_threshold=settings.VAD_THRESHOLD,
            redemption_frames=settings.VAD_REDEMPTION_FRAMES,
            pre_speech_pad_frames=settings.VAD_PRE_SPEECH_PAD_FRAMES,
            min_speech_frames=settings.VAD_MIN_SPEECH_FRAMES,
            on_speech_start=self.console.on_speech_start,
            on_speech_end=self.console.on_speech_end,
            on_misfire=self.console.on_vad_misfire,
        )
        self.audio = AudioListener(
            self.console,
            wake_detector=wake,
            segmenter=segmenter,
            input_device=settings.AUDIO_INPUT_DEVICE,
        )
        if not self.audio.start():
            logger.error("Audio initialization failed.")
            return False

        logger.info("Wake sound detection: %s", "enabled" if wake else "disabled")
        self.console.start()
        self._running = True
        return True

    def run(self):
        """Block until a shutdown signal arrives."""
        signal.signal(signal.SIGINT, self._shutdown_handler)
        signal.signal(signal.SIGTERM, self._shutdown_handler)
        while self._running:
            time.sleep(0.2)

    def _on_wake_sound(self, event: WakeSoundEvent):
        logger.info("Wake sound '%s' (score %.2f)", event.label, event.score)

    def _on_result(self, result: Accepted):
        logger.info(">> %s", result.text)

    def _on_speech_discarded(self, reason: str):
        logger.info("Discarded %s", reason)

    def _on_error(self, message: str):
        logger.error(message)

    def _shutdown_handler(self, signum, frame):
        """Handle Ctrl+C gracefully. Second Ctrl+C forces immediate exit."""
        if not self._running:
            # Second signal: force exit
            logger.info("Force shutdown (second signal).")
            sys.exit(1)
        logger.info("Shutdown signal received. Press Ctrl+C again to force quit.")
        self._running = False

    def shutdown(self):
        logger.info("Shutting down WakeFuse...")
        if self.audio is not None:
            self.audio.stop()
        if self.console is not None:
            self.console.stop()
            stats = self.console.latency_stats()
            if stats.get("segment_count"):
                logger.info("Latency: %s", stats)
        self._silencer.restore()
        logger.info("Shutdown complete.")

    def _log_banner(self, message: str):
        separator = "=" * 50
        logger.info(separator)
        logger.info(message)
        logger.info(separator)


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="WakeFuse voice command console")
    parser.add_argument(
        "--wake-word", "-w", action="append", dest="wake_words", default=None,
        help="Text wake word (repeatable, order decides ties). Overrides WAKE_WORDS.",
    )
    parser.add_argument("--require-wake-sound", action="store_true", default=None, help="Skip ASR without a wake sound")
    parser.add_argument("--wakesound-delay", type=float, default=None, help="Wake sound session window in ms")
    parser.add_argument("--wakesound-threshold", type=float, default=None, help="Wake sound score threshold")
    parser.add_argument("--no-cleanup", action="store_false", dest="cleanup", default=None, help="Keep punctuation")
    parser.add_argument("--debug", action="store_true", default=None, help="Verbose wake sound logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    import config as settings

    try:
        engine_config = settings.engine_config(
            wake_words=tuple(args.wake_words) if args.wake_words else None,
            require_wake_sound=args.require_wake_sound,
            wakesound_delay_ms=args.wakesound_delay,
            wakesound_threshold=args.wakesound_threshold,
            cleanup=args.cleanup,
            debug_wake_sound=args.debug,
        )
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)

    app = WakeFuse(engine_config)

    if not app.start():
        logger.error("Failed to initialize. Exiting.")
        app.shutdown()
        sys.exit(1)

    try:
        app.run()
    except KeyboardInterrupt:
        pass
    finally:
        app.shutdown()


if __name__ == "__main__":
    main()
