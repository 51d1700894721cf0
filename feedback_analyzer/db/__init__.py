"""Database module for Feedback Analyzer."""

from .models import (
    AggregatedInsight,
    CleanedFeedback,
    FeedbackItem,
    PipelineRun,
    RunResult,
    SentimentBreakdown,
    SentimentResult,
    SourceSummary,
    StepCheckpoint,
)
from .connection import get_connection, init_db

__all__ = [
    "AggregatedInsight",
    "CleanedFeedback",
    "FeedbackItem",
    "PipelineRun",
    "RunResult",
    "SentimentBreakdown",
    "SentimentResult",
    "SourceSummary",
    "StepCheckpoint",
    "get_connection",
    "init_db",
]
