"""
Pipeline API Schemas

Pydantic models for pipeline trigger requests and run status.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class AnalyzeRequest(BaseModel):
    """Request to start a pipeline run."""

    source: Optional[str] = Field(
        default=None,
        description="Only analyze feedback from this source (all sources if omitted)",
    )
    resume: bool = Field(
        default=True,
        description="Continue the latest unfinished run for the same source filter",
    )


class AnalyzeResponse(BaseModel):
    """Response when a run has been started."""

    success: bool
    run_id: int = Field(description="Poll /api/pipeline/runs/{run_id} for progress")
    message: str


class PipelineRunStatus(BaseModel):
    """Current status of a pipeline run."""

    id: int
    source_filter: Optional[str] = None
    status: Literal["running", "completed", "failed"]
    current_step: Optional[str] = None
    completed_steps: List[str] = []
    processed_count: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    # Computed
    duration_seconds: Optional[float] = None
