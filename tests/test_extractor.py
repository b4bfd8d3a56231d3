"""Tests for core/extractor.py: wake word matching and command cleanup."""

import pytest

from core.extractor import CommandExtractor, cleanup_command, find_wake_word
from core.models import REASON_NO_WAKE_WORD, Accepted, Rejected


class TestTextWakeWord:
    def test_accepts_command_after_wake_word(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",)))
        result = extractor.extract("hey akari turn on the lights", via_sound=False)

        assert result == Accepted(
            text="TURN ON THE LIGHTS",
            original="hey akari turn on the lights",
            via_sound=False,
            wake_word="hey akari",
        )

    def test_rejects_without_wake_word(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",)))
        assert extractor.extract("what time is it", via_sound=False) == Rejected(detail=REASON_NO_WAKE_WORD)

    def test_debug_mode_rejects_with_raw_text(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",), debug_wake_sound=True))
        assert extractor.extract("What time is it?", via_sound=False) == Rejected(detail="What time is it?")

    def test_match_is_case_insensitive_and_original_preserved(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("Hey Akari",)))
        result = extractor.extract("Well, HEY AKARI, Open The Door!", via_sound=False)

        assert isinstance(result, Accepted)
        assert result.text == "OPEN THE DOOR"
        assert result.original == "Well, HEY AKARI, Open The Door!"

    def test_configured_order_beats_text_position(self, make_config):
        """'jarvis' appears first in the text, but 'computer' is first in the list."""
        extractor = CommandExtractor(make_config(wake_words=("computer", "jarvis")))
        result = extractor.extract("jarvis tell computer to stop", via_sound=False)

        assert result.wake_word == "computer"
        assert result.text == "TO STOP"

    def test_wake_word_with_nothing_after_it(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",)))
        result = extractor.extract("Hey Akari.", via_sound=False)
        assert isinstance(result, Accepted)
        assert result.text == "."

    def test_no_wake_words_configured_rejects_text(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=()))
        assert isinstance(extractor.extract("hey akari lights", via_sound=False), Rejected)


class TestSoundTriggered:
    def test_accepts_without_wake_word(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",)))
        result = extractor.extract("Turn off the fan.", via_sound=True)

        assert result == Accepted(
            text="TURN OFF THE FAN.",
            original="Turn off the fan.",
            via_sound=True,
            wake_word=None,
        )

    def test_strips_spoken_wake_word_anyway(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",)))
        result = extractor.extract("hey akari volume up", via_sound=True)
        assert result.text == "VOLUME UP"
        assert result.wake_word == "hey akari"

    def test_no_wake_words_configured(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=()))
        result = extractor.extract("lights off", via_sound=True)
        assert result.text == "LIGHTS OFF"


class TestCleanup:
    def test_keeps_arithmetic_symbols(self):
        assert cleanup_command("what's (2 + 3) * 4 / 5 - 1.5?") == "what s (2 + 3) * 4 / 5 - 1.5"

    def test_collapses_whitespace(self):
        assert cleanup_command("  turn,   on;  the\tlights!! ") == "turn on the lights"

    def test_drops_non_ascii_letters(self):
        assert cleanup_command("café lights") == "caf lights"

    @pytest.mark.parametrize(
        "text",
        ["hey, akari! lights on.", "  (1+2)*3 = ?", "it's ~ fine", "already clean"],
    )
    def test_idempotent(self, text):
        once = cleanup_command(text)
        assert cleanup_command(once) == once

    def test_disabled_keeps_punctuation(self, make_config):
        extractor = CommandExtractor(make_config(wake_words=("hey akari",), cleanup=False))
        result = extractor.extract("hey akari, what's up?", via_sound=False)
        assert result.text == ", WHAT'S UP?"


class TestFindWakeWord:
    def test_returns_none_and_text_when_absent(self):
        assert find_wake_word("play music", ("hey akari",)) == (None, "play music")

    def test_uses_first_occurrence_of_the_word(self):
        word, rest = find_wake_word("akari akari stop", ("akari",))
        assert word == "akari"
        assert rest == "akari stop"
