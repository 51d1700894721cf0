"""Utility modules for Feedback Analyzer."""

from .text_cleaning import (
    CLASSIFIER_MAX_CHARS,
    clean_text,
    truncate_for_classifier,
)

__all__ = [
    "CLASSIFIER_MAX_CHARS",
    "clean_text",
    "truncate_for_classifier",
]
