"""
Feedback API Schemas

Pydantic models for ingestion and feedback listing.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class IngestRequest(BaseModel):
    """A single feedback item submitted by an ingestion client."""

    source: str = Field(min_length=1, max_length=100, description="Origin tag, e.g. 'github'")
    content: str = Field(min_length=1, description="Raw feedback text")
    metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Opaque key-value data stored alongside the item",
    )

    @field_validator("source")
    @classmethod
    def strip_source(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("source must not be blank")
        return v


class IngestResponse(BaseModel):
    """Response after storing a feedback item."""

    success: bool
    id: int
