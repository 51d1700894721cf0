"""In-memory collaborators for exercising the pipeline without a database or AI services."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from feedback_analyzer.db.models import (
    AggregatedInsight,
    FeedbackItem,
    PipelineRun,
    SentimentResult,
    SourceSummary,
    StepCheckpoint,
)
from feedback_analyzer.services.sentiment_classifier import ClassifierError, ClassifierOutput


class SimulatedCrash(BaseException):
    """Stands in for the process dying: not caught by `except Exception`."""


class InMemoryFeedbackStore:
    """In-memory record store mirroring FeedbackStorage semantics."""

    def __init__(self):
        self.feedback: Dict[int, FeedbackItem] = {}
        self.sentiments: List[SentimentResult] = []
        self.source_summaries: List[SourceSummary] = []
        self.insights: List[AggregatedInsight] = []
        self.mark_processed_calls: List[List[int]] = []
        self.fail_select: Optional[Exception] = None
        self.crash_after_sentiments: Optional[int] = None
        self._next_id = 1

    def add_feedback(self, source: str, content: str, processed: bool = False) -> int:
        feedback_id = self._next_id
        self._next_id += 1
        self.feedback[feedback_id] = FeedbackItem(
            id=feedback_id,
            source=source,
            content=content,
            processed=processed,
            created_at=datetime.now(timezone.utc),
        )
        return feedback_id

    def select_unprocessed(self, source: Optional[str] = None) -> List[FeedbackItem]:
        if self.fail_select is not None:
            raise self.fail_select
        return [
            item.model_copy()
            for item in sorted(self.feedback.values(), key=lambda f: f.id)
            if not item.processed and (source is None or item.source == source)
        ]

    def insert_sentiment(self, run_id, feedback_id, label, score) -> None:
        if any(s.run_id == run_id and s.feedback_id == feedback_id for s in self.sentiments):
            return
        self.sentiments.append(
            SentimentResult(run_id=run_id, feedback_id=feedback_id, sentiment=label, score=score)
        )
        if self.crash_after_sentiments is not None and len(self.sentiments) >= self.crash_after_sentiments:
            self.crash_after_sentiments = None
            raise SimulatedCrash("process died after storing a sentiment")

    def get_sentiments_for_run(self, run_id: int) -> List[SentimentResult]:
        return [s for s in self.sentiments if s.run_id == run_id]

    def insert_source_summary(self, run_id, summary: SourceSummary) -> None:
        if any(s.run_id == run_id and s.source == summary.source for s in self.source_summaries):
            return
        self.source_summaries.append(summary.model_copy(update={"run_id": run_id}))

    def get_source_summaries_for_run(self, run_id: int) -> List[SourceSummary]:
        return [s for s in self.source_summaries if s.run_id == run_id]

    def insert_aggregated_insight(self, run_id, insight: AggregatedInsight) -> None:
        if any(i.run_id == run_id for i in self.insights):
            return
        self.insights.append(insight.model_copy(update={"run_id": run_id}))

    def mark_processed(self, feedback_ids: Sequence[int]) -> int:
        ids = list(feedback_ids)
        self.mark_processed_calls.append(ids)
        for feedback_id in ids:
            self.feedback[feedback_id].processed = True
        return len(ids)

    @property
    def analysis_write_count(self) -> int:
        return len(self.sentiments) + len(self.source_summaries) + len(self.insights)


class InMemoryRunStore:
    """In-memory run/checkpoint/lock store mirroring PipelineRunStorage semantics."""

    def __init__(self):
        self.runs: Dict[int, PipelineRun] = {}
        self.checkpoints: Dict[Tuple[int, str], StepCheckpoint] = {}
        self.lock_holder: Optional[str] = None
        self.lock_stamps = 0
        self.fail_checkpoint_for: Optional[str] = None
        self._next_id = 1

    def create_run(self, source_filter: Optional[str] = None) -> PipelineRun:
        run = PipelineRun(id=self._next_id, source_filter=source_filter, status="running")
        self._next_id += 1
        self.runs[run.id] = run.model_copy()
        return run

    def get_run(self, run_id: int) -> Optional[PipelineRun]:
        run = self.runs.get(run_id)
        return run.model_copy() if run else None

    def find_resumable_run(self, source_filter: Optional[str] = None) -> Optional[PipelineRun]:
        candidates = [
            r for r in self.runs.values()
            if r.status in ("running", "failed") and r.source_filter == source_filter
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.id).model_copy()

    def update_run(self, run: PipelineRun) -> None:
        current_step = self.runs[run.id].current_step
        self.runs[run.id] = run.model_copy(update={"current_step": current_step})

    def get_step_checkpoint(self, run_id: int, step_name: str) -> Optional[StepCheckpoint]:
        return self.checkpoints.get((run_id, step_name))

    def save_step_checkpoint(self, run_id: int, step_name: str, output: Any) -> None:
        if self.fail_checkpoint_for == step_name:
            raise ConnectionError(f"database unreachable while checkpointing {step_name}")
        self.checkpoints.setdefault(
            (run_id, step_name),
            StepCheckpoint(run_id=run_id, step_name=step_name, output=output),
        )
        self.runs[run_id].current_step = step_name

    def completed_steps(self, run_id: int) -> List[str]:
        return [name for (rid, name) in self.checkpoints if rid == run_id]

    def acquire_lock(self, holder: str) -> bool:
        if self.lock_holder is None or self.lock_holder == holder:
            self.lock_holder = holder
            self.lock_stamps += 1
            return True
        return False

    def release_lock(self, holder: str) -> None:
        if self.lock_holder == holder:
            self.lock_holder = None


class FakeClassifier:
    """Classifier returning scripted labels keyed by text, or in call order."""

    def __init__(
        self,
        labels: Union[Sequence[str], Dict[str, str], None] = None,
        fail_on: Sequence[str] = (),
        default_label: str = "POSITIVE",
    ):
        self.labels = labels
        self.fail_on = set(fail_on)
        self.default_label = default_label
        self.calls: List[str] = []

    def classify(self, text: str) -> ClassifierOutput:
        self.calls.append(text)
        if text in self.fail_on:
            raise ClassifierError(f"classifier unavailable for {text!r}")
        if isinstance(self.labels, dict):
            label = self.labels.get(text, self.default_label)
        elif self.labels is not None:
            label = self.labels[len(self.calls) - 1]
        else:
            label = self.default_label
        return ClassifierOutput(label=label, score=0.9)


def summary_reply(summary: str = "Users are happy", themes=("speed",)) -> str:
    themes_json = ", ".join(f'"{t}"' for t in themes)
    return (
        "Here is the analysis:\n"
        f'{{"summary": "{summary}", "themes": [{themes_json}], "sentiment": "positive"}}\n'
        "Let me know if you need more."
    )


AGGREGATION_REPLY = (
    '{"overallSummary": "Mostly positive", "topThemes": ["speed", "docs"], '
    '"overallSentiment": "positive", "urgentItems": ["Fix timeouts"]}'
)


class FakeGenerator:
    """Generator that answers summary and aggregation prompts differently.

    `summary` and `aggregation` may be a string reply, an Exception to raise,
    or a callable taking the prompt.
    """

    def __init__(
        self,
        summary: Union[str, Exception, Callable[[str], str]] = None,
        aggregation: Union[str, Exception, Callable[[str], str]] = AGGREGATION_REPLY,
    ):
        self.summary = summary if summary is not None else summary_reply()
        self.aggregation = aggregation
        self.calls: List[Tuple[str, int]] = []

    @staticmethod
    def _respond(behavior, prompt: str) -> str:
        if isinstance(behavior, Exception):
            raise behavior
        if callable(behavior):
            return behavior(prompt)
        return behavior

    def generate(self, prompt: str, max_tokens: int) -> str:
        self.calls.append((prompt, max_tokens))
        if prompt.startswith("You are analyzing customer feedback from multiple sources"):
            return self._respond(self.aggregation, prompt)
        return self._respond(self.summary, prompt)

    @property
    def summary_calls(self) -> List[str]:
        return [p for p, _ in self.calls if p.startswith("Analyze the following customer feedback")]

    @property
    def aggregation_calls(self) -> List[str]:
        return [p for p, _ in self.calls if p.startswith("You are analyzing")]
