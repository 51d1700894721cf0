"""
Text cleaning for feedback content.

Anything outside ASCII word characters, whitespace and basic punctuation
(. , ! ? -) is dropped, then whitespace runs collapse to a single space.
The transform is pure and total.
"""

import re

# Long feedback is classified on a prefix only
CLASSIFIER_MAX_CHARS = 512

_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?-]", re.ASCII)
_WHITESPACE_RUN = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """
    Normalize raw feedback text.

    Examples:
        "  Love it!!  \\n so fast 🚀 " → "Love it!! so fast"
        "@cloudflare pricing: too high" → "cloudflare pricing too high"
    """
    if not text:
        return ""
    stripped = _DISALLOWED_CHARS.sub("", text)
    return _WHITESPACE_RUN.sub(" ", stripped).strip()


def truncate_for_classifier(text: str, max_chars: int = CLASSIFIER_MAX_CHARS) -> str:
    """Prefix of text sent to the sentiment classifier."""
    return text[:max_chars]
