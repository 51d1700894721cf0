"""
Feedback Analyzer Prompts

Centralized prompt templates for text generator interactions.
"""

from .source_summary import (
    SOURCE_SUMMARY_PROMPT,
    SOURCE_SUMMARY_MAX_TOKENS,
    build_source_summary_prompt,
)

from .aggregation import (
    AGGREGATION_PROMPT,
    AGGREGATION_MAX_TOKENS,
    format_source_summary_line,
    build_aggregation_prompt,
)

__all__ = [
    # Per-source summary
    "SOURCE_SUMMARY_PROMPT",
    "SOURCE_SUMMARY_MAX_TOKENS",
    "build_source_summary_prompt",
    # Aggregation
    "AGGREGATION_PROMPT",
    "AGGREGATION_MAX_TOKENS",
    "format_source_summary_line",
    "build_aggregation_prompt",
]
