"""Pydantic models for database entities."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Labels the classifier reports for the two polar categories. Anything else
# (including a missing classification) is folded into neutral.
POSITIVE_LABEL = "POSITIVE"
NEGATIVE_LABEL = "NEGATIVE"

RunStatus = Literal["running", "completed", "failed"]

OverallSentiment = Literal["positive", "negative", "neutral", "mixed"]


def _coerce_string_list(value: Any) -> List[str]:
    """Coerce an LLM-provided value into a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        return []
    items = []
    for item in value:
        if item is None:
            continue
        text = item if isinstance(item, str) else str(item)
        text = text.strip()
        if text:
            items.append(text)
    return items


class FeedbackItem(BaseModel):
    """A single piece of feedback ingested from a source."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    content: str
    cleaned_content: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
    created_at: Optional[datetime] = None


class CleanedFeedback(BaseModel):
    """A feedback item paired with its cleaned text (in-memory only)."""

    id: int
    source: str
    cleaned_content: str


class SentimentResult(BaseModel):
    """Classifier output for one feedback item within a run."""

    model_config = ConfigDict(from_attributes=True)

    feedback_id: int
    sentiment: str  # raw classifier label, e.g. "POSITIVE"
    score: float
    run_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_positive(self) -> bool:
        return self.sentiment.upper() == POSITIVE_LABEL

    @property
    def is_negative(self) -> bool:
        return self.sentiment.upper() == NEGATIVE_LABEL


class SentimentBreakdown(BaseModel):
    """Per-source sentiment counts. neutral is derived, not classified."""

    positive: int = Field(default=0, ge=0)
    negative: int = Field(default=0, ge=0)
    neutral: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.positive + self.negative + self.neutral


class SourceSummary(BaseModel):
    """Generated summary for all feedback from one source in a run."""

    model_config = ConfigDict(from_attributes=True)

    source: str
    summary: str = "Summary not available"
    themes: List[str] = Field(default_factory=list)
    sentiment_breakdown: SentimentBreakdown = Field(default_factory=SentimentBreakdown)
    run_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> str:
        if v is None or v == "":
            return "Summary not available"
        return v if isinstance(v, str) else str(v)

    @field_validator("themes", mode="before")
    @classmethod
    def coerce_themes(cls, v: Any) -> List[str]:
        return _coerce_string_list(v)


class AggregatedInsight(BaseModel):
    """Cross-source insight produced once per run."""

    model_config = ConfigDict(from_attributes=True)

    overall_summary: str = "Not available"
    top_themes: List[str] = Field(default_factory=list)
    overall_sentiment: str = "mixed"
    urgent_items: List[str] = Field(default_factory=list)
    run_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator("overall_summary", mode="before")
    @classmethod
    def coerce_overall_summary(cls, v: Any) -> str:
        if v is None or v == "":
            return "Not available"
        return v if isinstance(v, str) else str(v)

    @field_validator("overall_sentiment", mode="before")
    @classmethod
    def coerce_overall_sentiment(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return "mixed"
        return v.strip().lower()

    @field_validator("top_themes", "urgent_items", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> List[str]:
        return _coerce_string_list(v)


class PipelineRun(BaseModel):
    """A pipeline execution record."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    source_filter: Optional[str] = None
    status: RunStatus = "running"
    current_step: Optional[str] = None
    processed_count: int = 0
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


class StepCheckpoint(BaseModel):
    """Persisted output of one completed pipeline step."""

    run_id: int
    step_name: str
    output: Any = None
    completed_at: Optional[datetime] = None


class RunResult(BaseModel):
    """What a pipeline run reports back to its caller."""

    status: Literal["no_feedback", "success"]
    run_id: Optional[int] = None
    message: Optional[str] = None
    processed_count: int = 0
    source_summaries: List[SourceSummary] = Field(default_factory=list)
    final_insights: Optional[AggregatedInsight] = None
