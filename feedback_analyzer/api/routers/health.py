"""
Health Check Endpoints

/health answers without touching anything else. /health/db makes one round
trip through the run store, which doubles as a report on whether a pipeline
run currently holds the lock.
"""

import time
from datetime import datetime, timezone
from typing import Optional

import psycopg2
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from feedback_analyzer import __version__
from feedback_analyzer.api.deps import get_run_storage
from feedback_analyzer.db.run_storage import PipelineRunStorage


router = APIRouter(tags=["health"])


class ServiceHealth(BaseModel):
    status: str = "ok"
    version: str = __version__
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DatabaseHealth(BaseModel):
    """Outcome of the database round trip. `pipeline_locked` is None when it failed."""

    connected: bool
    latency_ms: Optional[float] = None
    pipeline_locked: Optional[bool] = None
    error: Optional[str] = None


@router.get("/health", response_model=ServiceHealth)
def health_check():
    """Liveness: the process is up and serving requests."""
    return ServiceHealth()


@router.get("/health/db", response_model=DatabaseHealth)
def database_health_check(storage: PipelineRunStorage = Depends(get_run_storage)):
    """Readiness: the database answers, and whether a run is in progress."""
    started = time.perf_counter()
    try:
        locked = storage.is_locked()
    except psycopg2.Error as e:
        return DatabaseHealth(connected=False, error=str(e).strip())

    return DatabaseHealth(
        connected=True,
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
        pipeline_locked=locked,
    )
