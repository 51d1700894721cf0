"""
Insight Endpoints

Read-side queries the dashboard uses: latest insight, per-source summaries
and sentiment stats. Every analysis artifact is append-only, so "latest"
is always the most recent row.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from feedback_analyzer.api.deps import get_feedback_storage
from feedback_analyzer.api.schemas.insights import (
    SentimentCount,
    StatsResponse,
    SummaryResponse,
)
from feedback_analyzer.db.feedback_storage import FeedbackStorage
from feedback_analyzer.db.models import SourceSummary

router = APIRouter(prefix="/api", tags=["insights"])


@router.get("/summary", response_model=SummaryResponse)
def get_summary(
    limit: int = Query(default=10, ge=1, le=100),
    storage: FeedbackStorage = Depends(get_feedback_storage),
):
    """Latest aggregated insight and the most recent source summaries."""
    return SummaryResponse(
        insights=storage.get_latest_insight(),
        source_summaries=storage.get_recent_source_summaries(limit=limit),
    )


@router.get("/analysis/{source}", response_model=SourceSummary)
def get_source_analysis(
    source: str,
    storage: FeedbackStorage = Depends(get_feedback_storage),
):
    """Latest summary for one source."""
    summary = storage.get_latest_source_summary(source)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No analysis found for source '{source}'")
    return summary


@router.get("/stats", response_model=StatsResponse)
def get_stats(storage: FeedbackStorage = Depends(get_feedback_storage)):
    """Feedback totals and stored sentiment label counts."""
    stats = storage.get_stats()
    return StatsResponse(
        total=stats["total"],
        processed=stats["processed"],
        pending=stats["total"] - stats["processed"],
        sentiment_breakdown=[SentimentCount(**row) for row in stats["sentiment_breakdown"]],
    )
