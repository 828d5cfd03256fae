"""
Repository for processing_runs: one row per coordinator invocation.
"""

from datetime import date

from psycopg.types.json import Jsonb

from candidate_intake.db.helpers import execute_query, fetch_one
from candidate_intake.features.candidate_pipeline.domain import (
    RunStats,
    RunStatus,
    TriggerSource,
)
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ProcessingRunRepository:
    """Create and finalize run rows."""

    @classmethod
    async def create(
        cls, target_day: date, triggered_by: TriggerSource, config: dict | None = None
    ) -> str:
        query = """
            INSERT INTO processing_runs (target_day, status, triggered_by, config, started_at)
            VALUES (%s, %s, %s, %s, NOW())
            RETURNING id
        """
        row = await fetch_one(
            query,
            (target_day, RunStatus.RUNNING.value, triggered_by.value, Jsonb(config or {})),
        )
        run_id = str(row["id"])
        logger.info(
            "Processing run created",
            run_id=run_id,
            target_day=target_day.isoformat(),
            triggered_by=triggered_by.value,
        )
        return run_id

    @classmethod
    async def finalize(
        cls,
        run_id: str,
        status: RunStatus,
        stats: RunStats,
        duration_ms: int,
        error_message: str | None = None,
    ) -> None:
        query = """
            UPDATE processing_runs
            SET status = %(status)s,
                routes_processed = %(routes_processed)s,
                emails_fetched = %(emails_fetched)s,
                attachments_total = %(attachments_total)s,
                attachments_processed = %(attachments_processed)s,
                attachments_skipped = %(attachments_skipped)s,
                candidates_extracted = %(candidates_extracted)s,
                candidates_inserted = %(candidates_inserted)s,
                candidates_rejected = %(candidates_rejected)s,
                candidates_duplicates = %(candidates_duplicates)s,
                ai_calls_made = %(ai_calls_made)s,
                errors_count = %(errors_count)s,
                error_message = %(error_message)s,
                duration_ms = %(duration_ms)s,
                completed_at = NOW()
            WHERE id = %(run_id)s
        """
        params = {
            **stats.to_dict(),
            "status": status.value,
            "error_message": error_message,
            "duration_ms": duration_ms,
            "run_id": run_id,
        }
        await execute_query(query, params)
