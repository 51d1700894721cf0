"""
Per-Source Summary Prompt

Asks the generator to summarize every cleaned feedback item from one source
and report themes and an overall sentiment as a JSON object.

Used by: FeedbackPipeline (per-source-summary step)
"""

from typing import Sequence

# Output budget for one source summary
SOURCE_SUMMARY_MAX_TOKENS = 512

# Feedback items are separated by a blank line
FEEDBACK_SEPARATOR = "\n\n"

SOURCE_SUMMARY_PROMPT = '''Analyze the following customer feedback from {source}:

{feedback}

Provide:
1. A brief summary (2-3 sentences)
2. Top 3-5 themes or issues
3. Overall sentiment

Format your response as JSON:
{{
  "summary": "...",
  "themes": ["theme1", "theme2", ...],
  "sentiment": "positive/negative/mixed"
}}'''


def build_source_summary_prompt(source: str, texts: Sequence[str]) -> str:
    """Build the summary prompt for one source's cleaned feedback texts."""
    return SOURCE_SUMMARY_PROMPT.format(
        source=source,
        feedback=FEEDBACK_SEPARATOR.join(texts),
    )
