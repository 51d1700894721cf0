"""
Cross-Source Aggregation Prompt

Combines every per-source summary of a run into one prompt asking for an
overall summary, shared themes, a sentiment trend and urgent items.

Used by: FeedbackPipeline (aggregate-insights step)
"""

from typing import Sequence

from ..db.models import SourceSummary

# Output budget for the aggregated insight
AGGREGATION_MAX_TOKENS = 1024

AGGREGATION_PROMPT = '''You are analyzing customer feedback from multiple sources. Here are the per-source summaries:

{summaries}

Provide a comprehensive analysis:
1. Overall summary across all sources
2. Top 5 themes that appear across multiple sources
3. Overall sentiment trend
4. Urgent items that need immediate attention

Format as JSON:
{{
  "overallSummary": "...",
  "topThemes": ["theme1", "theme2", ...],
  "overallSentiment": "positive/negative/mixed",
  "urgentItems": ["item1", "item2", ...]
}}'''


def format_source_summary_line(summary: SourceSummary) -> str:
    """One line per source: "source: summary (Themes: a, b)"."""
    return f"{summary.source}: {summary.summary} (Themes: {', '.join(summary.themes)})"


def build_aggregation_prompt(summaries: Sequence[SourceSummary]) -> str:
    """Build the aggregation prompt from a run's per-source summaries."""
    combined = "\n\n".join(format_source_summary_line(s) for s in summaries)
    return AGGREGATION_PROMPT.format(summaries=combined)
