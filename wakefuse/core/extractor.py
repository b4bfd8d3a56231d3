"""Command extraction from transcribed text.

Sound-triggered segments are already addressed, so a spoken wake word is
only stripped if present. Everything else needs a text wake word: the
configured list is scanned in order and the first word found anywhere in
the text wins, even if another wake word occurs earlier in the text.
"""

import logging
import re
from typing import Optional

from core.models import REASON_NO_WAKE_WORD, Accepted, CommandResult, EngineConfig, Rejected

logger = logging.getLogger("wakefuse.extractor")

# Keep word chars, whitespace and arithmetic/grouping symbols so spoken math survives cleanup
_DISALLOWED_CHARS = re.compile(r"[^\w\s+\-*/().]", re.ASCII)
_WHITESPACE_RUN = re.compile(r"\s+")


def cleanup_command(text: str) -> str:
    """Replace punctuation with spaces, collapse whitespace, trim. Idempotent."""
    text = _DISALLOWED_CHARS.sub(" ", text)
    return _WHITESPACE_RUN.sub(" ", text).strip()


def find_wake_word(lower_text: str, wake_words: tuple[str, ...]) -> tuple[Optional[str], str]:
    """Return (matched wake word, text after it) or (None, lower_text) if none occurs.

    Order of `wake_words` decides ties, not position in the text.
    """
    for word in wake_words:
        idx = lower_text.find(word.lower())
        if idx != -1:
            return word, lower_text[idx + len(word):].strip()
    return None, lower_text


class CommandExtractor:
    """Turns a raw transcription into an Accepted command or a Rejected detail."""

    def __init__(self, config: EngineConfig):
        self._config = config

    def extract(self, raw_text: str, via_sound: bool) -> CommandResult:
        lower = raw_text.lower()
        wake_word, command = find_wake_word(lower, self._config.wake_words)

        if wake_word is None and not via_sound:
            # Debug mode surfaces what was heard instead of the fixed reason
            detail = raw_text if self._config.debug_wake_sound else REASON_NO_WAKE_WORD
            logger.debug("No wake word in transcription: '%s'", raw_text)
            return Rejected(detail=detail)

        if self._config.cleanup:
            command = cleanup_command(command)

        return Accepted(
            text=command.upper(),
            original=raw_text,
            via_sound=via_sound,
            wake_word=wake_word,
        )
