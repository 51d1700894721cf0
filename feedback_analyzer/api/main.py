"""
Feedback Analyzer API - Main Application

FastAPI application for ingesting feedback, triggering analysis runs and
serving the results a dashboard displays.

Run with:
    uvicorn feedback_analyzer.api.main:app --reload --port 8000

API Documentation available at:
    - Swagger UI: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedback_analyzer.logging_utils import configure_api_logging

configure_api_logging()

# Load .env from project root so DATABASE_URL, OPENAI_API_KEY etc. are available
load_dotenv(Path(__file__).parent.parent.parent / ".env")

from feedback_analyzer import __version__
from feedback_analyzer.api.routers import feedback, health, insights, pipeline
from feedback_analyzer.db.connection import get_connection
from feedback_analyzer.db.run_storage import PipelineRunStorage

logger = logging.getLogger(__name__)


def cleanup_interrupted_pipeline_runs() -> int:
    """
    Mark runs left 'running' by a previous process as failed and free the lock.

    Failed runs remain resumable: the next trigger continues from their last
    checkpoint. Assumes a single API instance; with several instances a live
    run elsewhere would be marked failed too.

    Returns:
        Number of runs cleaned up, or -1 if cleanup failed.
    """
    try:
        with get_connection() as conn:
            storage = PipelineRunStorage(conn)
            stale_ids = storage.fail_interrupted_runs()
            storage.force_release_lock()

        if stale_ids:
            logger.warning(
                f"Marked {len(stale_ids)} interrupted pipeline run(s) as failed: {stale_ids}"
            )
        return len(stale_ids)

    except Exception as e:
        logger.error(f"Failed to clean up interrupted pipeline runs: {e}")
        return -1


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    cleanup_interrupted_pipeline_runs()
    yield


app = FastAPI(
    lifespan=lifespan,
    title="Feedback Analyzer API",
    description="""
    API for the multi-source feedback analysis pipeline.

    ## Features

    - **Ingestion**: Submit feedback items from any source
    - **Pipeline Control**: Trigger analysis runs, inspect run history
    - **Insights**: Latest cross-source insight, per-source summaries, sentiment stats
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Register routers
app.include_router(health.router)
app.include_router(feedback.router)
app.include_router(pipeline.router)
app.include_router(insights.router)


@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "name": "Feedback Analyzer API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
