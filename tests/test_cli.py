"""Tests for the feedback-analyzer CLI."""

import sys
from unittest.mock import MagicMock, patch

import pytest

from feedback_analyzer import cli, pipeline
from feedback_analyzer.db.models import (
    AggregatedInsight,
    PipelineRun,
    RunResult,
    SentimentBreakdown,
    SourceSummary,
)
from feedback_analyzer.pipeline import PipelineAlreadyRunningError, PipelineLockLostError


def run_cli(*argv):
    with patch.object(sys, "argv", ["feedback-analyzer", *argv]):
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
    return exc_info.value.code


@pytest.fixture
def mock_connection():
    with patch("feedback_analyzer.cli.get_connection") as mock_get_conn:
        mock_get_conn.return_value.__enter__.return_value = MagicMock()
        yield mock_get_conn


class TestRunCommand:
    @patch("feedback_analyzer.cli.run_pipeline")
    def test_prints_result(self, mock_run, capsys):
        mock_run.return_value = RunResult(status="success", run_id=4, processed_count=3)

        assert run_cli("run", "--source", "github") == 0

        mock_run.assert_called_once_with(source="github", resume=True)
        assert '"processed_count": 3' in capsys.readouterr().out

    @patch("feedback_analyzer.cli.run_pipeline")
    def test_no_resume_flag(self, mock_run):
        mock_run.return_value = RunResult(status="no_feedback", run_id=5)

        run_cli("run", "--no-resume")

        mock_run.assert_called_once_with(source=None, resume=False)

    @patch("feedback_analyzer.cli.run_pipeline")
    def test_lock_conflict_exits_2(self, mock_run, capsys):
        mock_run.side_effect = PipelineAlreadyRunningError("Another pipeline run is in progress")

        assert run_cli("run") == 2
        assert "Another pipeline run" in capsys.readouterr().err

    @patch("feedback_analyzer.cli.run_pipeline")
    def test_lock_lost_mid_run_exits_2(self, mock_run, capsys):
        mock_run.side_effect = PipelineLockLostError("Pipeline lock was taken over by another run")

        assert run_cli("run") == 2
        assert "taken over" in capsys.readouterr().err

    def test_pipeline_module_has_no_separate_entry_point(self):
        assert not hasattr(pipeline, "main")


class TestQueryCommands:
    def test_summary(self, mock_connection, capsys):
        with patch("feedback_analyzer.cli.FeedbackStorage") as storage_cls:
            storage = storage_cls.return_value
            storage.get_latest_insight.return_value = AggregatedInsight(
                overall_summary="All good", top_themes=["speed"], urgent_items=["outage"],
            )
            storage.get_recent_source_summaries.return_value = [
                SourceSummary(
                    source="github", summary="Fast",
                    sentiment_breakdown=SentimentBreakdown(positive=2, negative=1, neutral=0),
                ),
            ]

            assert run_cli("summary") == 0

        out = capsys.readouterr().out
        assert "All good" in out
        assert "! outage" in out
        assert "## github  (+2 / -1 / ~0)" in out

    def test_summary_empty(self, mock_connection, capsys):
        with patch("feedback_analyzer.cli.FeedbackStorage") as storage_cls:
            storage_cls.return_value.get_latest_insight.return_value = None
            storage_cls.return_value.get_recent_source_summaries.return_value = []

            run_cli("summary")

        out = capsys.readouterr().out
        assert "No aggregated insights yet." in out
        assert "No source summaries yet." in out

    def test_stats(self, mock_connection, capsys):
        with patch("feedback_analyzer.cli.FeedbackStorage") as storage_cls:
            storage_cls.return_value.get_stats.return_value = {
                "total": 5, "processed": 2, "sentiment_breakdown": [],
            }

            run_cli("stats")

        assert "Pending analysis: 3" in capsys.readouterr().out

    def test_runs(self, mock_connection, capsys):
        with patch("feedback_analyzer.cli.PipelineRunStorage") as storage_cls:
            storage_cls.return_value.list_runs.return_value = [
                PipelineRun(id=7, status="failed", current_step="clean-data"),
            ]

            run_cli("runs", "--limit", "1")

            storage_cls.return_value.list_runs.assert_called_once_with(limit=1)
        assert "clean-data" in capsys.readouterr().out

    def test_unlock(self, mock_connection, capsys):
        with patch("feedback_analyzer.cli.PipelineRunStorage") as storage_cls:
            run_cli("unlock")

            storage_cls.return_value.force_release_lock.assert_called_once()
        assert "released" in capsys.readouterr().out

    def test_no_command_prints_help(self):
        assert run_cli() == 1
