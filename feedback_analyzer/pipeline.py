"""
Feedback Analyzer pipeline.

Orchestrates: fetch unprocessed feedback → clean → classify sentiment →
summarize per source → aggregate across sources → mark processed.

Each step's output is checkpointed before the next step starts, so a run
interrupted part-way is resumed by the next invocation with the same source
filter instead of starting over.

Run it with `feedback-analyzer run` or through POST /api/analyze.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

from pydantic import TypeAdapter

from .checkpoints import CheckpointStore, DurableStepRunner
from .db.models import (
    AggregatedInsight,
    CleanedFeedback,
    FeedbackItem,
    PipelineRun,
    RunResult,
    SentimentBreakdown,
    SentimentResult,
    SourceSummary,
)
from .prompts import (
    AGGREGATION_MAX_TOKENS,
    SOURCE_SUMMARY_MAX_TOKENS,
    build_aggregation_prompt,
    build_source_summary_prompt,
)
from .response_parser import parse_embedded_json
from .services.sentiment_classifier import SentimentClassifier
from .services.text_generator import TextGenerator
from .utils.text_cleaning import clean_text, truncate_for_classifier

logger = logging.getLogger(__name__)

# Step names, in execution order
STEP_FETCH = "fetch-feedback"
STEP_CLEAN = "clean-data"
STEP_CLASSIFY = "sentiment-analysis"
STEP_SUMMARIZE = "per-source-summary"
STEP_AGGREGATE = "aggregate-insights"
STEP_MARK_PROCESSED = "mark-processed"

PIPELINE_STEPS = [
    STEP_FETCH,
    STEP_CLEAN,
    STEP_CLASSIFY,
    STEP_SUMMARIZE,
    STEP_AGGREGATE,
    STEP_MARK_PROCESSED,
]

# Step output types, used to checkpoint and replay
_FEEDBACK_LIST = TypeAdapter(List[FeedbackItem])
_CLEANED_LIST = TypeAdapter(List[CleanedFeedback])
_SENTIMENT_LIST = TypeAdapter(List[SentimentResult])
_SUMMARY_LIST = TypeAdapter(List[SourceSummary])
_OPTIONAL_INSIGHT = TypeAdapter(Optional[AggregatedInsight])
_COUNT = TypeAdapter(int)

NO_FEEDBACK_MESSAGE = "No unprocessed feedback found"


class PipelineAlreadyRunningError(Exception):
    """Raised when another run holds the pipeline lock."""

    pass


class PipelineLockLostError(PipelineAlreadyRunningError):
    """Raised mid-run when the lock went stale and another run took it over."""

    pass


class FeedbackStore(Protocol):
    """Record store operations the pipeline uses. FeedbackStorage implements it."""

    def select_unprocessed(self, source: Optional[str] = None) -> List[FeedbackItem]:
        ...

    def insert_sentiment(
        self, run_id: Optional[int], feedback_id: int, label: str, score: float
    ) -> None:
        ...

    def get_sentiments_for_run(self, run_id: int) -> List[SentimentResult]:
        ...

    def insert_source_summary(self, run_id: Optional[int], summary: SourceSummary) -> None:
        ...

    def get_source_summaries_for_run(self, run_id: int) -> List[SourceSummary]:
        ...

    def insert_aggregated_insight(
        self, run_id: Optional[int], insight: AggregatedInsight
    ) -> None:
        ...

    def mark_processed(self, feedback_ids: Sequence[int]) -> int:
        ...


class RunStore(CheckpointStore, Protocol):
    """Run bookkeeping the pipeline uses. PipelineRunStorage implements it."""

    def create_run(self, source_filter: Optional[str] = None) -> PipelineRun:
        ...

    def get_run(self, run_id: int) -> Optional[PipelineRun]:
        ...

    def find_resumable_run(self, source_filter: Optional[str] = None) -> Optional[PipelineRun]:
        ...

    def update_run(self, run: PipelineRun) -> None:
        ...

    def acquire_lock(self, holder: str) -> bool:
        ...

    def release_lock(self, holder: str) -> None:
        ...


def reopen_run(run_store: RunStore, run: PipelineRun) -> PipelineRun:
    """Put an earlier run back into running status."""
    run.status = "running"
    run.error_message = None
    run.completed_at = None
    run_store.update_run(run)
    return run


def prepare_run(
    run_store: RunStore, source: Optional[str] = None, resume: bool = True
) -> PipelineRun:
    """
    Pick the run an invocation works on.

    With resume, the latest running/failed run for the same source filter is
    reopened; otherwise (or when there is none) a new run is created.
    """
    if resume:
        previous = run_store.find_resumable_run(source)
        if previous is not None:
            logger.info(
                f"Resuming pipeline run #{previous.id} "
                f"(last completed step: {previous.current_step or 'none'})"
            )
            return reopen_run(run_store, previous)

    run = run_store.create_run(source)
    logger.info(f"Created pipeline run #{run.id} (source={source or 'all'})")
    return run


def group_by_source(items: Sequence[CleanedFeedback]) -> Dict[str, List[CleanedFeedback]]:
    """Group items by source, keeping sources in first-seen order."""
    groups: Dict[str, List[CleanedFeedback]] = {}
    for item in items:
        groups.setdefault(item.source, []).append(item)
    return groups


def compute_sentiment_breakdown(
    items: Sequence[CleanedFeedback],
    sentiments_by_id: Dict[int, SentimentResult],
) -> SentimentBreakdown:
    """
    Count positive/negative results for a group; neutral is the remainder.

    Items without a sentiment result (classification failed) land in neutral,
    so the three counts always add up to len(items).
    """
    positive = 0
    negative = 0
    for item in items:
        result = sentiments_by_id.get(item.id)
        if result is None:
            continue
        if result.is_positive:
            positive += 1
        elif result.is_negative:
            negative += 1
    return SentimentBreakdown(
        positive=positive,
        negative=negative,
        neutral=len(items) - positive - negative,
    )


class FeedbackPipeline:
    """Durable six-step feedback analysis pipeline.

    Store failures while fetching or checkpointing abort the run. Classifier
    and generator failures are contained to the item or source they affect.
    """

    def __init__(
        self,
        feedback_store: FeedbackStore,
        run_store: RunStore,
        classifier: SentimentClassifier,
        generator: TextGenerator,
    ):
        self.feedback_store = feedback_store
        self.run_store = run_store
        self.classifier = classifier
        self.generator = generator
        self._holder: Optional[str] = None

    # ========================================================================
    # Run lifecycle
    # ========================================================================

    def run(
        self,
        source: Optional[str] = None,
        resume: bool = True,
        run_id: Optional[int] = None,
        holder: Optional[str] = None,
    ) -> RunResult:
        """
        Run the pipeline over unprocessed feedback.

        Args:
            source: Only process feedback from this source
            resume: Continue the latest unfinished run with the same source
                filter instead of starting a new one
            run_id: Work on this already-prepared run (see prepare_run)
                instead of picking one; its source filter wins over `source`
            holder: Lock token to use; pass the one a caller already
                acquired the lock with to hand the lock over

        Returns:
            RunResult with status "no_feedback" or "success"

        Raises:
            PipelineAlreadyRunningError: Another run holds the lock
            PipelineLockLostError: The lock was taken over mid-run; the run is
                left as is for its new owner
            Exception: Any fatal store error, after marking the run failed
        """
        holder = holder or uuid4().hex
        if not self.run_store.acquire_lock(holder):
            raise PipelineAlreadyRunningError("Another pipeline run is in progress")

        self._holder = holder
        try:
            run = self._start_run(source, resume, run_id)
            try:
                result = self._execute(run)
            except PipelineLockLostError as e:
                logger.error(f"Pipeline run #{run.id} stopped: {e}")
                raise
            except Exception as e:
                logger.error(f"Pipeline run #{run.id} failed: {e}")
                self._finalize_failed_run(run, str(e))
                raise
            self._finalize_completed_run(run, result)
            return result
        finally:
            self._holder = None
            self._release_lock(holder)

    def _start_run(
        self, source: Optional[str], resume: bool, run_id: Optional[int]
    ) -> PipelineRun:
        if run_id is None:
            return prepare_run(self.run_store, source, resume)

        run = self.run_store.get_run(run_id)
        if run is None:
            raise ValueError(f"Pipeline run #{run_id} not found")
        if run.status != "running":
            reopen_run(self.run_store, run)
        logger.info(f"Starting prepared pipeline run #{run.id}")
        return run

    def _refresh_lock(self) -> None:
        """Re-stamp the lock; raises once another run has taken it over."""
        if self._holder is None:
            return
        if not self.run_store.acquire_lock(self._holder):
            raise PipelineLockLostError("Pipeline lock was taken over by another run")

    def _finalize_completed_run(self, run: PipelineRun, result: RunResult) -> None:
        run.status = "completed"
        run.processed_count = result.processed_count
        run.completed_at = datetime.now(timezone.utc)
        self.run_store.update_run(run)

        logger.info("=" * 50)
        logger.info(f"Pipeline run #{run.id} completed: {result.status}")
        logger.info(f"  Processed:        {result.processed_count}")
        logger.info(f"  Source summaries: {len(result.source_summaries)}")
        logger.info(f"  Insights:         {'yes' if result.final_insights else 'no'}")
        logger.info("=" * 50)

    def _finalize_failed_run(self, run: PipelineRun, error_message: str) -> None:
        """Best-effort: the store may be the thing that failed."""
        run.status = "failed"
        run.error_message = error_message
        run.completed_at = datetime.now(timezone.utc)
        try:
            self.run_store.update_run(run)
        except Exception as e:
            logger.error(f"Could not record failure of run #{run.id}: {e}")

    def _release_lock(self, holder: str) -> None:
        try:
            self.run_store.release_lock(holder)
        except Exception as e:
            logger.error(f"Could not release pipeline lock: {e}")

    # ========================================================================
    # Steps
    # ========================================================================

    def _execute(self, run: PipelineRun) -> RunResult:
        steps = DurableStepRunner(run.id, self.run_store)
        source = run.source_filter

        def step(name, adapter, fn):
            self._refresh_lock()
            return steps.run_step(name, adapter, fn)

        feedback = step(
            STEP_FETCH, _FEEDBACK_LIST,
            lambda: self.feedback_store.select_unprocessed(source),
        )
        if not feedback:
            logger.info(NO_FEEDBACK_MESSAGE)
            return RunResult(status="no_feedback", run_id=run.id, message=NO_FEEDBACK_MESSAGE)

        logger.info(f"Fetched {len(feedback)} unprocessed feedback items")

        cleaned = step(
            STEP_CLEAN, _CLEANED_LIST,
            lambda: self.clean_feedback(feedback),
        )
        sentiments = step(
            STEP_CLASSIFY, _SENTIMENT_LIST,
            lambda: self.classify_feedback(run.id, cleaned),
        )
        summaries = step(
            STEP_SUMMARIZE, _SUMMARY_LIST,
            lambda: self.summarize_sources(run.id, cleaned, sentiments),
        )
        insights = step(
            STEP_AGGREGATE, _OPTIONAL_INSIGHT,
            lambda: self.aggregate_insights(run.id, summaries),
        )
        step(
            STEP_MARK_PROCESSED, _COUNT,
            lambda: self.feedback_store.mark_processed([item.id for item in feedback]),
        )

        return RunResult(
            status="success",
            run_id=run.id,
            processed_count=len(feedback),
            source_summaries=summaries,
            final_insights=insights,
        )

    @staticmethod
    def clean_feedback(feedback: Sequence[FeedbackItem]) -> List[CleanedFeedback]:
        """Clean every item's content. Pure; never fails."""
        return [
            CleanedFeedback(id=item.id, source=item.source, cleaned_content=clean_text(item.content))
            for item in feedback
        ]

    def classify_feedback(
        self, run_id: int, cleaned: Sequence[CleanedFeedback]
    ) -> List[SentimentResult]:
        """
        Classify each item, persisting every result as soon as it arrives.

        Items whose classification fails are logged and left out. Results
        already persisted for this run (before a crash) are reused.
        """
        existing = {s.feedback_id: s for s in self.feedback_store.get_sentiments_for_run(run_id)}
        if existing:
            logger.info(f"Reusing {len(existing)} sentiment results already stored for run #{run_id}")

        results: List[SentimentResult] = []
        for item in cleaned:
            if item.id in existing:
                results.append(existing[item.id])
                continue

            self._refresh_lock()
            try:
                output = self.classifier.classify(truncate_for_classifier(item.cleaned_content))
                self.feedback_store.insert_sentiment(run_id, item.id, output.label, output.score)
            except Exception as e:
                logger.warning(f"Error analyzing sentiment for item {item.id}: {e}")
                continue

            results.append(
                SentimentResult(
                    feedback_id=item.id,
                    sentiment=output.label,
                    score=output.score,
                    run_id=run_id,
                )
            )

        failed = len(cleaned) - len(results)
        logger.info(f"Classified {len(results)}/{len(cleaned)} items ({failed} failed)")
        return results

    def summarize_sources(
        self,
        run_id: int,
        cleaned: Sequence[CleanedFeedback],
        sentiments: Sequence[SentimentResult],
    ) -> List[SourceSummary]:
        """Summarize each source's feedback; one source failing doesn't stop the rest."""
        existing = {s.source: s for s in self.feedback_store.get_source_summaries_for_run(run_id)}
        sentiments_by_id = {s.feedback_id: s for s in sentiments}

        summaries: List[SourceSummary] = []
        for source, items in group_by_source(cleaned).items():
            if source in existing:
                summaries.append(existing[source])
                continue

            self._refresh_lock()
            try:
                summary = self._summarize_source(run_id, source, items, sentiments_by_id)
                self.feedback_store.insert_source_summary(run_id, summary)
            except Exception as e:
                logger.warning(f"Error summarizing {source}: {e}")
                continue

            summaries.append(summary)

        logger.info(f"Summarized {len(summaries)} source(s)")
        return summaries

    def _summarize_source(
        self,
        run_id: int,
        source: str,
        items: Sequence[CleanedFeedback],
        sentiments_by_id: Dict[int, SentimentResult],
    ) -> SourceSummary:
        prompt = build_source_summary_prompt(source, [item.cleaned_content for item in items])
        response = self.generator.generate(prompt, SOURCE_SUMMARY_MAX_TOKENS)
        analysis = parse_embedded_json(response)
        if not analysis:
            logger.warning(f"No JSON in summary response for {source}, using defaults")

        return SourceSummary(
            run_id=run_id,
            source=source,
            summary=analysis.get("summary"),
            themes=analysis.get("themes"),
            sentiment_breakdown=compute_sentiment_breakdown(items, sentiments_by_id),
        )

    def aggregate_insights(
        self, run_id: int, summaries: Sequence[SourceSummary]
    ) -> Optional[AggregatedInsight]:
        """
        Combine per-source summaries into one insight.

        Best-effort: returns None (and stores nothing) when there is nothing
        to aggregate, the generator fails, or its reply holds no JSON object.
        """
        if not summaries:
            logger.info("No source summaries to aggregate")
            return None

        self._refresh_lock()
        try:
            response = self.generator.generate(
                build_aggregation_prompt(summaries), AGGREGATION_MAX_TOKENS
            )
            insights = parse_embedded_json(response)
            if not insights:
                logger.warning("Aggregation response contained no JSON object, skipping insight")
                return None

            insight = AggregatedInsight(
                run_id=run_id,
                overall_summary=insights.get("overallSummary"),
                top_themes=insights.get("topThemes"),
                overall_sentiment=insights.get("overallSentiment"),
                urgent_items=insights.get("urgentItems"),
            )
            self.feedback_store.insert_aggregated_insight(run_id, insight)
            return insight
        except Exception as e:
            logger.error(f"Error aggregating insights: {e}")
            return None


def run_pipeline(
    source: Optional[str] = None,
    resume: bool = True,
    run_id: Optional[int] = None,
    holder: Optional[str] = None,
) -> RunResult:
    """
    Run the pipeline against the configured database and AI services.

    Args:
        source: Only process feedback from this source
        resume: Continue the latest unfinished run for the same source filter
        run_id: Work on this already-prepared run
        holder: Lock token a caller already acquired the lock with

    Returns:
        RunResult
    """
    from .db.connection import get_connection
    from .db.feedback_storage import FeedbackStorage
    from .db.run_storage import PipelineRunStorage
    from .services.sentiment_classifier import HuggingFaceSentimentClassifier
    from .services.text_generator import OpenAITextGenerator

    with get_connection() as conn:
        pipeline = FeedbackPipeline(
            feedback_store=FeedbackStorage(conn),
            run_store=PipelineRunStorage(conn),
            classifier=HuggingFaceSentimentClassifier(),
            generator=OpenAITextGenerator(),
        )
        return pipeline.run(source=source, resume=resume, run_id=run_id, holder=holder)

