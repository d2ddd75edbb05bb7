"""Tests for disc label sanitization."""

import re

import pytest

from dvdiso.utils.filename import (
    DEFAULT_DISC_LABEL,
    MAX_DISC_LABEL_LENGTH,
    normalize_to_ascii,
    sanitize_disc_label,
)

LABEL_PATTERN = re.compile(r"^[A-Z0-9_-]{1,32}$")


class TestNormalizeToAscii:
    """Test cases for normalize_to_ascii."""

    def test_accented_characters(self):
        """Test transliteration of accented characters."""
        assert normalize_to_ascii("Café Crème") == "Cafe Creme"

    def test_plain_ascii_unchanged(self):
        """Test that ASCII text passes through."""
        assert normalize_to_ascii("Holiday 2024") == "Holiday 2024"


class TestSanitizeDiscLabel:
    """Test cases for sanitize_disc_label."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("My Holiday", "MY_HOLIDAY"),
            ("  spaced   out  ", "SPACED_OUT"),
            ("Ünïcödé Fïlm", "UNICODE_FILM"),
            ("a/b\\c:d*e?", "ABCDE"),
            ("keep-dash_and_underscore", "KEEP-DASH_AND_UNDERSCORE"),
            ("2024.12.25", "20241225"),
        ],
    )
    def test_sanitizes(self, label, expected):
        """Test sanitization of assorted labels."""
        assert sanitize_disc_label(label) == expected

    @pytest.mark.parametrize("label", ["", "   ", "!!!", "___", "---", None])
    def test_empty_result_uses_fallback(self, label):
        """Test that labels with nothing usable fall back to the default."""
        assert sanitize_disc_label(label) == DEFAULT_DISC_LABEL

    def test_custom_fallback(self):
        """Test a caller supplied fallback."""
        assert sanitize_disc_label("***", fallback="BACKUP") == "BACKUP"

    def test_truncated_to_maximum_length(self):
        """Test that long labels are truncated to 32 characters."""
        result = sanitize_disc_label("A" * 50)
        assert len(result) == MAX_DISC_LABEL_LENGTH

    def test_truncation_does_not_leave_trailing_separator(self):
        """Test that truncation strips a dangling separator."""
        result = sanitize_disc_label("A" * 31 + " B")
        assert result == "A" * 31

    @pytest.mark.parametrize(
        "label",
        [
            "My Holiday",
            "Ünïcödé",
            "",
            "x" * 80,
            "a b c d",
            "--x--",
            "Ça va? Très bien!",
        ],
    )
    def test_idempotent(self, label):
        """Test that sanitizing twice equals sanitizing once."""
        once = sanitize_disc_label(label)
        assert sanitize_disc_label(once) == once

    @pytest.mark.parametrize(
        "label",
        ["hello world", "日本語のタイトル", "\t\n", "émoji 🎬 title", "x" * 100],
    )
    def test_result_always_valid(self, label):
        """Test that every result matches the volume label rules."""
        assert LABEL_PATTERN.match(sanitize_disc_label(label))
