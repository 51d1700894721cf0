"""Tests for feedback text cleaning."""

import pytest

from feedback_analyzer.utils.text_cleaning import (
    CLASSIFIER_MAX_CHARS,
    clean_text,
    truncate_for_classifier,
)


class TestCleanText:
    """clean_text strips disallowed characters, then collapses whitespace."""

    @pytest.mark.parametrize("raw,expected", [
        ("Great product!", "Great product!"),
        ("  Love it!!  \n so fast 🚀 ", "Love it!! so fast"),
        ("@cloudflare pricing: too high", "cloudflare pricing too high"),
        ("Is it ready? Yes, mostly.", "Is it ready? Yes, mostly."),
        ("snake_case and kebab-case", "snake_case and kebab-case"),
        ("tabs\tand\r\nnewlines", "tabs and newlines"),
        ("café naïve", "caf nave"),
        ("#$%^&*()", ""),
    ])
    def test_cleaning(self, raw, expected):
        assert clean_text(raw) == expected

    def test_empty(self):
        assert clean_text("") == ""

    def test_removed_char_between_spaces_leaves_single_space(self):
        assert clean_text("a @ b") == "a b"

    @pytest.mark.parametrize("raw", [
        "  Love it!!  \n so fast 🚀 ",
        "a @ b",
        "x y",
        "",
    ])
    def test_idempotent(self, raw):
        once = clean_text(raw)
        assert clean_text(once) == once

    def test_output_has_no_edge_or_double_whitespace(self):
        result = clean_text(" \t one  ~  two \n")
        assert result == result.strip()
        assert "  " not in result


class TestTruncateForClassifier:
    def test_short_text_unchanged(self):
        assert truncate_for_classifier("short") == "short"

    def test_long_text_truncated(self):
        text = "x" * (CLASSIFIER_MAX_CHARS * 2)
        assert truncate_for_classifier(text) == "x" * CLASSIFIER_MAX_CHARS

    def test_custom_limit(self):
        assert truncate_for_classifier("abcdef", max_chars=3) == "abc"
