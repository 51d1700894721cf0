"""Tests for prompt construction."""

from feedback_analyzer.db.models import SourceSummary
from feedback_analyzer.prompts import (
    build_aggregation_prompt,
    build_source_summary_prompt,
    format_source_summary_line,
)


class TestSourceSummaryPrompt:
    def test_includes_source_and_texts(self):
        prompt = build_source_summary_prompt("discord", ["first", "second"])

        assert "customer feedback from discord:" in prompt
        assert "first\n\nsecond" in prompt

    def test_json_template_braces_survive_formatting(self):
        prompt = build_source_summary_prompt("x", ["t"])

        assert '"summary": "..."' in prompt
        assert prompt.rstrip().endswith("}")


class TestAggregationPrompt:
    def test_summary_line(self):
        summary = SourceSummary(source="github", summary="Builds are slow", themes=["ci", "speed"])

        assert format_source_summary_line(summary) == "github: Builds are slow (Themes: ci, speed)"

    def test_summary_line_without_themes(self):
        summary = SourceSummary(source="github", summary="Quiet")

        assert format_source_summary_line(summary) == "github: Quiet (Themes: )"

    def test_summaries_joined_with_blank_line(self):
        summaries = [
            SourceSummary(source="a", summary="one", themes=["x"]),
            SourceSummary(source="b", summary="two", themes=["y"]),
        ]

        prompt = build_aggregation_prompt(summaries)

        assert "a: one (Themes: x)\n\nb: two (Themes: y)" in prompt
        assert '"overallSummary": "..."' in prompt
