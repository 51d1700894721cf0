"""
Pipeline Control Endpoints

Trigger analysis runs and inspect run history. The request takes the
pipeline lock and creates (or reopens) the run record, then hands both to a
FastAPI background task that works with its own database connection.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from feedback_analyzer.api.deps import get_run_storage
from feedback_analyzer.api.schemas.pipeline import (
    AnalyzeRequest,
    AnalyzeResponse,
    PipelineRunStatus,
)
from feedback_analyzer.db.models import PipelineRun
from feedback_analyzer.db.run_storage import PipelineRunStorage
from feedback_analyzer.pipeline import (
    PipelineAlreadyRunningError,
    prepare_run,
    run_pipeline,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["pipeline"])


def _run_pipeline_task(
    source: Optional[str], resume: bool, run_id: int, holder: str
) -> None:
    """Background task body. Errors are logged; the run record carries the failure."""
    try:
        result = run_pipeline(source=source, resume=resume, run_id=run_id, holder=holder)
        logger.info(f"Background pipeline run #{result.run_id} finished: {result.status}")
    except PipelineAlreadyRunningError as e:
        logger.warning(f"Background pipeline run #{run_id} stopped: {e}")
    except Exception as e:
        logger.error(f"Background pipeline run #{run_id} failed: {e}", exc_info=True)


def _to_status(run: PipelineRun, completed_steps: List[str]) -> PipelineRunStatus:
    duration = None
    if run.started_at:
        now = datetime.now(timezone.utc)
        if run.started_at.tzinfo is None:
            now = now.replace(tzinfo=None)
        end = run.completed_at or now
        duration = round((end - run.started_at).total_seconds(), 1)
    return PipelineRunStatus(
        id=run.id,
        source_filter=run.source_filter,
        status=run.status,
        current_step=run.current_step,
        completed_steps=completed_steps,
        processed_count=run.processed_count,
        error_message=run.error_message,
        started_at=run.started_at,
        completed_at=run.completed_at,
        duration_seconds=duration,
    )


@router.post("/analyze", response_model=AnalyzeResponse)
def start_analysis(
    background_tasks: BackgroundTasks,
    request: Optional[AnalyzeRequest] = None,
    storage: PipelineRunStorage = Depends(get_run_storage),
):
    """
    Start a pipeline run in the background.

    The response carries the run id to poll at /api/pipeline/runs/{run_id}.
    Returns 409 if another run currently holds the pipeline lock.
    """
    request = request or AnalyzeRequest()
    holder = uuid4().hex
    if not storage.acquire_lock(holder):
        raise HTTPException(status_code=409, detail="A pipeline run is already in progress")

    try:
        run = prepare_run(storage, request.source, request.resume)
    except Exception:
        storage.release_lock(holder)
        raise

    background_tasks.add_task(_run_pipeline_task, request.source, request.resume, run.id, holder)
    scope = f"source '{request.source}'" if request.source else "all sources"
    return AnalyzeResponse(
        success=True,
        run_id=run.id,
        message=f"Analysis started for {scope} as run #{run.id}.",
    )


@router.get("/pipeline/runs", response_model=List[PipelineRunStatus])
def list_pipeline_runs(
    limit: int = Query(default=20, ge=1, le=100),
    storage: PipelineRunStorage = Depends(get_run_storage),
):
    """Recent runs, newest first."""
    return [_to_status(run, []) for run in storage.list_runs(limit=limit)]


@router.get("/pipeline/runs/{run_id}", response_model=PipelineRunStatus)
def get_pipeline_run(
    run_id: int,
    storage: PipelineRunStorage = Depends(get_run_storage),
):
    """Status of one run, including which steps have been checkpointed."""
    run = storage.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Pipeline run {run_id} not found")
    steps = [c.step_name for c in storage.list_step_checkpoints(run_id)]
    return _to_status(run, steps)
