"""
FastAPI Dependency Injection

Provides database connections and storage services to API endpoints.
"""

from typing import Generator

from fastapi import Depends

from feedback_analyzer.db.connection import connect
from feedback_analyzer.db.feedback_storage import FeedbackStorage
from feedback_analyzer.db.run_storage import PipelineRunStorage


def get_db() -> Generator:
    """
    FastAPI dependency for database connections.

    Yields a connection with RealDictCursor for dict-style row access.
    Commits on success, rolls back on error, and always closes.
    """
    conn = connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_feedback_storage(db=Depends(get_db)) -> FeedbackStorage:
    """Feedback record store bound to the request's connection."""
    return FeedbackStorage(db)


def get_run_storage(db=Depends(get_db)) -> PipelineRunStorage:
    """Run/checkpoint store bound to the request's connection."""
    return PipelineRunStorage(db)
