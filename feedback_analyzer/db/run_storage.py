"""Storage for pipeline runs, step checkpoints and the run lock."""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from psycopg2.extras import RealDictCursor

from .models import PipelineRun, StepCheckpoint

logger = logging.getLogger(__name__)

# A lock older than this is considered abandoned by a crashed process
LOCK_TTL_SECONDS = max(60, min(86400, int(os.getenv("PIPELINE_LOCK_TTL_SECONDS", "3600"))))

_RUN_COLUMNS = """
    id, source_filter, status, current_step, processed_count,
    error_message, started_at, completed_at
"""


class PipelineRunStorage:
    """CRUD operations for pipeline runs and their step checkpoints.

    Checkpoint and status writes commit immediately: a step only counts as
    done once its output is durable.
    """

    def __init__(self, db_connection):
        self.db = db_connection

    def _cursor(self):
        """Get a cursor with RealDictCursor to ensure dict-style row access."""
        return self.db.cursor(cursor_factory=RealDictCursor)

    # ========================================================================
    # Runs
    # ========================================================================

    def create_run(self, source_filter: Optional[str] = None) -> PipelineRun:
        """Create a new run in running status."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO pipeline_runs (source_filter, status)
                VALUES (%s, 'running')
                RETURNING {_RUN_COLUMNS}
                """,
                (source_filter,),
            )
            row = cur.fetchone()
        self.db.commit()
        return self._row_to_run(row)

    def get_run(self, run_id: int) -> Optional[PipelineRun]:
        """Get a pipeline run by ID."""
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_RUN_COLUMNS} FROM pipeline_runs WHERE id = %s",
                (run_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._row_to_run(row)

    def find_resumable_run(self, source_filter: Optional[str] = None) -> Optional[PipelineRun]:
        """Most recent unfinished run with the same source filter, if any."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_RUN_COLUMNS}
                FROM pipeline_runs
                WHERE status IN ('running', 'failed')
                  AND source_filter IS NOT DISTINCT FROM %s
                ORDER BY id DESC
                LIMIT 1
                """,
                (source_filter,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._row_to_run(row)

    def update_run(self, run: PipelineRun) -> None:
        """Persist status/progress fields of a run.

        current_step is left alone: save_step_checkpoint owns it.
        """
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE pipeline_runs SET
                    status = %s,
                    processed_count = %s,
                    error_message = %s,
                    completed_at = %s
                WHERE id = %s
                """,
                (
                    run.status,
                    run.processed_count,
                    run.error_message,
                    run.completed_at,
                    run.id,
                ),
            )
        self.db.commit()

    def list_runs(self, limit: int = 20) -> List[PipelineRun]:
        """Recent runs, newest first."""
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_RUN_COLUMNS}
                FROM pipeline_runs
                ORDER BY id DESC
                LIMIT %s
                """,
                (limit,),
            )
            return [self._row_to_run(row) for row in cur.fetchall()]

    # ========================================================================
    # Step checkpoints
    # ========================================================================

    def get_step_checkpoint(self, run_id: int, step_name: str) -> Optional[StepCheckpoint]:
        """Checkpoint for one step of a run, or None if the step has not completed."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, step_name, output, completed_at
                FROM pipeline_steps
                WHERE run_id = %s AND step_name = %s
                """,
                (run_id, step_name),
            )
            row = cur.fetchone()
            if not row:
                return None
            return self._row_to_checkpoint(row)

    def list_step_checkpoints(self, run_id: int) -> List[StepCheckpoint]:
        """All completed steps of a run, in completion order."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT run_id, step_name, output, completed_at
                FROM pipeline_steps
                WHERE run_id = %s
                ORDER BY completed_at
                """,
                (run_id,),
            )
            return [self._row_to_checkpoint(row) for row in cur.fetchall()]

    def save_step_checkpoint(self, run_id: int, step_name: str, output: Any) -> None:
        """Record a step's output. The first checkpoint for a step wins."""
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO pipeline_steps (run_id, step_name, output)
                VALUES (%s, %s, %s)
                ON CONFLICT (run_id, step_name) DO NOTHING
                """,
                (run_id, step_name, json.dumps(output)),
            )
            cur.execute(
                "UPDATE pipeline_runs SET current_step = %s WHERE id = %s",
                (step_name, run_id),
            )
        self.db.commit()

    # ========================================================================
    # Run lock
    # ========================================================================

    def acquire_lock(self, holder: str) -> bool:
        """Take the single-row run lock for `holder` (an opaque token).

        Succeeds when the lock is free, already held by the same holder, or
        older than LOCK_TTL_SECONDS.
        """
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE pipeline_lock
                SET holder = %s, acquired_at = NOW()
                WHERE id = 1
                  AND (
                    holder IS NULL
                    OR holder = %s
                    OR acquired_at < NOW() - make_interval(secs => %s)
                  )
                RETURNING holder
                """,
                (holder, holder, LOCK_TTL_SECONDS),
            )
            acquired = cur.fetchone() is not None
        self.db.commit()
        return acquired

    def release_lock(self, holder: str) -> None:
        """Release the lock if `holder` still owns it."""
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE pipeline_lock
                SET holder = NULL, acquired_at = NULL
                WHERE id = 1 AND holder = %s
                """,
                (holder,),
            )
        self.db.commit()

    def force_release_lock(self) -> None:
        """Clear the lock regardless of holder (after a crash, single instance only)."""
        with self._cursor() as cur:
            cur.execute(
                "UPDATE pipeline_lock SET holder = NULL, acquired_at = NULL WHERE id = 1"
            )
        self.db.commit()

    def is_locked(self) -> bool:
        """True if a live (non-stale) holder owns the lock."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT 1 FROM pipeline_lock
                WHERE id = 1
                  AND holder IS NOT NULL
                  AND acquired_at >= NOW() - make_interval(secs => %s)
                """,
                (LOCK_TTL_SECONDS,),
            )
            return cur.fetchone() is not None

    def fail_interrupted_runs(self) -> List[int]:
        """Mark runs left in 'running' status as failed. Returns their IDs.

        Failed runs stay resumable, so the next invocation picks up from
        their last checkpoint.
        """
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE pipeline_runs
                SET status = 'failed',
                    completed_at = NOW(),
                    error_message = 'Pipeline interrupted by server restart. The next run will resume it.'
                WHERE status = 'running'
                RETURNING id
                """
            )
            ids = [row["id"] for row in cur.fetchall()]
        self.db.commit()
        return ids

    # ========================================================================
    # Row mappers
    # ========================================================================

    def _row_to_run(self, row: Dict[str, Any]) -> PipelineRun:
        return PipelineRun(
            id=row["id"],
            source_filter=row.get("source_filter"),
            status=row["status"],
            current_step=row.get("current_step"),
            processed_count=row.get("processed_count") or 0,
            error_message=row.get("error_message"),
            started_at=row.get("started_at") or datetime.now(timezone.utc),
            completed_at=row.get("completed_at"),
        )

    def _row_to_checkpoint(self, row: Dict[str, Any]) -> StepCheckpoint:
        return StepCheckpoint(
            run_id=row["run_id"],
            step_name=row["step_name"],
            output=row.get("output"),
            completed_at=row.get("completed_at"),
        )
