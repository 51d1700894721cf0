"""
Insight API Schemas

Pydantic models for the dashboard read endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel

from feedback_analyzer.db.models import AggregatedInsight, SourceSummary


class SummaryResponse(BaseModel):
    """Latest aggregated insight plus the most recent per-source summaries."""

    insights: Optional[AggregatedInsight] = None
    source_summaries: List[SourceSummary] = []


class SentimentCount(BaseModel):
    """Number of stored results with one raw sentiment label."""

    sentiment: Optional[str] = None
    count: int


class StatsResponse(BaseModel):
    """Feedback totals and sentiment distribution."""

    total: int
    processed: int
    pending: int
    sentiment_breakdown: List[SentimentCount] = []
