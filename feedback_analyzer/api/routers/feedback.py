"""
Feedback Endpoints

Ingest raw feedback and list what has been received.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from feedback_analyzer.api.deps import get_feedback_storage
from feedback_analyzer.api.schemas.feedback import IngestRequest, IngestResponse
from feedback_analyzer.db.feedback_storage import FeedbackStorage
from feedback_analyzer.db.models import FeedbackItem

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["feedback"])


@router.post("/ingest", response_model=IngestResponse)
def ingest_feedback(
    request: IngestRequest,
    storage: FeedbackStorage = Depends(get_feedback_storage),
):
    """Store one feedback item; it is picked up by the next pipeline run."""
    feedback_id = storage.insert_feedback(request.source, request.content, request.metadata)
    logger.info(f"Ingested feedback #{feedback_id} from {request.source}")
    return IngestResponse(success=True, id=feedback_id)


@router.get("/feedback", response_model=List[FeedbackItem])
def list_feedback(
    limit: int = Query(default=50, ge=1, le=500),
    storage: FeedbackStorage = Depends(get_feedback_storage),
):
    """Most recent feedback items, newest first."""
    return storage.list_recent_feedback(limit=limit)
