"""Storage layer for feedback items and the analysis artifacts derived from them.

Follows the codebase pattern: service class takes a db_connection and uses
cursors for queries. Unlike read paths, every write commits immediately so a
per-item or per-source result survives a crash in the middle of a step.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from .models import (
    AggregatedInsight,
    FeedbackItem,
    SentimentBreakdown,
    SentimentResult,
    SourceSummary,
)

logger = logging.getLogger(__name__)


class FeedbackStorage:
    """Record store for feedback, sentiment results, summaries and insights.

    Requires a psycopg2 connection; rows are read through RealDictCursor so
    mappers can access columns by name.
    """

    def __init__(self, db_connection):
        self.db = db_connection

    def _cursor(self):
        """Get a cursor with RealDictCursor to ensure dict-style row access."""
        return self.db.cursor(cursor_factory=RealDictCursor)

    def _execute_write(self, sql: str, params: tuple) -> None:
        """Run one write and commit it. A database error rolls the transaction back and propagates."""
        try:
            with self._cursor() as cur:
                cur.execute(sql, params)
        except psycopg2.Error:
            self.db.rollback()
            raise
        self.db.commit()

    # ========================================================================
    # Feedback
    # ========================================================================

    def insert_feedback(
        self, source: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """Insert a raw feedback item. Returns the new ID."""
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO feedback (source, content, metadata)
                VALUES (%s, %s, %s)
                RETURNING id
                """,
                (source, content, json.dumps(metadata or {})),
            )
            row = cur.fetchone()
        self.db.commit()
        return row["id"]

    def select_unprocessed(self, source: Optional[str] = None) -> List[FeedbackItem]:
        """Fetch unprocessed feedback, optionally for a single source, oldest first."""
        with self._cursor() as cur:
            if source:
                cur.execute(
                    """
                    SELECT id, source, content, cleaned_content, metadata, processed, created_at
                    FROM feedback
                    WHERE source = %s AND processed = FALSE
                    ORDER BY id
                    """,
                    (source,),
                )
            else:
                cur.execute(
                    """
                    SELECT id, source, content, cleaned_content, metadata, processed, created_at
                    FROM feedback
                    WHERE processed = FALSE
                    ORDER BY id
                    """
                )
            return [self._row_to_feedback(row) for row in cur.fetchall()]

    def list_recent_feedback(self, limit: int = 50) -> List[FeedbackItem]:
        """Most recent feedback items, newest first."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, source, content, cleaned_content, metadata, processed, created_at
                FROM feedback
                ORDER BY created_at DESC, id DESC
                LIMIT %s
                """,
                (limit,),
            )
            return [self._row_to_feedback(row) for row in cur.fetchall()]

    def mark_processed(self, feedback_ids: Iterable[int]) -> int:
        """Set processed = TRUE for every ID in one statement. Returns rows updated."""
        ids = list(feedback_ids)
        if not ids:
            return 0
        try:
            with self._cursor() as cur:
                cur.execute(
                    "UPDATE feedback SET processed = TRUE WHERE id = ANY(%s)",
                    (ids,),
                )
                updated = cur.rowcount
        except psycopg2.Error:
            self.db.rollback()
            raise
        self.db.commit()
        return updated

    # ========================================================================
    # Sentiment
    # ========================================================================

    def insert_sentiment(
        self, run_id: Optional[int], feedback_id: int, label: str, score: float
    ) -> None:
        """Persist one classification. Re-inserting for the same run is a no-op."""
        self._execute_write(
            """
            INSERT INTO sentiment_analysis (run_id, feedback_id, sentiment, score)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (run_id, feedback_id) DO NOTHING
            """,
            (run_id, feedback_id, label, score),
        )

    def get_sentiments_for_run(self, run_id: int) -> List[SentimentResult]:
        """Sentiment results already persisted by a run."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, feedback_id, sentiment, score, created_at
                FROM sentiment_analysis
                WHERE run_id = %s
                ORDER BY id
                """,
                (run_id,),
            )
            return [SentimentResult(**row) for row in cur.fetchall()]

    # ========================================================================
    # Source summaries
    # ========================================================================

    def insert_source_summary(self, run_id: Optional[int], summary: SourceSummary) -> None:
        """Persist one per-source summary. Re-inserting for the same run is a no-op."""
        self._execute_write(
            """
            INSERT INTO source_summaries (run_id, source, summary, themes, sentiment_breakdown)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (run_id, source) DO NOTHING
            """,
            (
                run_id,
                summary.source,
                summary.summary,
                json.dumps(summary.themes),
                json.dumps(summary.sentiment_breakdown.model_dump()),
            ),
        )

    def get_source_summaries_for_run(self, run_id: int) -> List[SourceSummary]:
        """Summaries already persisted by a run, in insertion order."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, source, summary, themes, sentiment_breakdown, created_at
                FROM source_summaries
                WHERE run_id = %s
                ORDER BY id
                """,
                (run_id,),
            )
            return [self._row_to_source_summary(row) for row in cur.fetchall()]

    def get_recent_source_summaries(self, limit: int = 10) -> List[SourceSummary]:
        """Most recent summaries across all sources."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, source, summary, themes, sentiment_breakdown, created_at
                FROM source_summaries
                ORDER BY created_at DESC, id DESC
                LIMIT %s
                """,
                (limit,),
            )
            return [self._row_to_source_summary(row) for row in cur.fetchall()]

    def get_latest_source_summary(self, source: str) -> Optional[SourceSummary]:
        """Most recent summary for one source."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, source, summary, themes, sentiment_breakdown, created_at
                FROM source_summaries
                WHERE source = %s
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (source,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._row_to_source_summary(row)

    # ========================================================================
    # Aggregated insights
    # ========================================================================

    def insert_aggregated_insight(
        self, run_id: Optional[int], insight: AggregatedInsight
    ) -> None:
        """Persist the run's cross-source insight. Re-inserting for the same run is a no-op."""
        self._execute_write(
            """
            INSERT INTO aggregated_insights (run_id, summary, top_themes, overall_sentiment, urgent_items)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (run_id) DO NOTHING
            """,
            (
                run_id,
                insight.overall_summary,
                json.dumps(insight.top_themes),
                insight.overall_sentiment,
                json.dumps(insight.urgent_items),
            ),
        )

    def get_latest_insight(self) -> Optional[AggregatedInsight]:
        """The dashboard only ever shows the newest insight."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, summary, top_themes, overall_sentiment, urgent_items, created_at
                FROM aggregated_insights
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._row_to_insight(row)

    # ========================================================================
    # Stats
    # ========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Totals for the dashboard header and sentiment chart."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT COUNT(*) AS total,
                       COUNT(*) FILTER (WHERE processed) AS processed
                FROM feedback
                """
            )
            counts = cur.fetchone()
            cur.execute(
                """
                SELECT sentiment, COUNT(*) AS count
                FROM sentiment_analysis
                GROUP BY sentiment
                ORDER BY count DESC
                """
            )
            breakdown = [
                {"sentiment": row["sentiment"], "count": row["count"]}
                for row in cur.fetchall()
            ]
        return {
            "total": counts["total"] or 0,
            "processed": counts["processed"] or 0,
            "sentiment_breakdown": breakdown,
        }

    # ========================================================================
    # Row mappers
    # ========================================================================

    @staticmethod
    def _load_json(value: Any, default: Any) -> Any:
        """JSONB comes back decoded; older rows may hold JSON text."""
        if value is None:
            return default
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Stored JSON column could not be decoded: {value[:80]!r}")
                return default
        return value

    def _row_to_feedback(self, row: Dict[str, Any]) -> FeedbackItem:
        return FeedbackItem(
            id=row["id"],
            source=row["source"],
            content=row["content"],
            cleaned_content=row.get("cleaned_content"),
            metadata=self._load_json(row.get("metadata"), {}),
            processed=bool(row.get("processed")),
            created_at=row.get("created_at"),
        )

    def _row_to_source_summary(self, row: Dict[str, Any]) -> SourceSummary:
        breakdown = self._load_json(row.get("sentiment_breakdown"), {})
        return SourceSummary(
            run_id=row.get("run_id"),
            source=row["source"],
            summary=row["summary"],
            themes=self._load_json(row.get("themes"), []),
            sentiment_breakdown=SentimentBreakdown(**breakdown),
            created_at=row.get("created_at"),
        )

    def _row_to_insight(self, row: Dict[str, Any]) -> AggregatedInsight:
        return AggregatedInsight(
            run_id=row.get("run_id"),
            overall_summary=row["summary"],
            top_themes=self._load_json(row.get("top_themes"), []),
            overall_sentiment=row.get("overall_sentiment"),
            urgent_items=self._load_json(row.get("urgent_items"), []),
            created_at=row.get("created_at"),
        )
