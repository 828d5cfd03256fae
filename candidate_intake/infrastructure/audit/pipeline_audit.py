"""
AuditRecorder - append-only decision log for the candidate pipeline.

Every decision point in a run (message fetched, attachment admitted or
skipped, extraction outcome, fabrication screen, qualification gate, dedup,
insert) produces one pipeline_audit_log row.

Usage:
    from candidate_intake.infrastructure.audit import audit_recorder

    await audit_recorder.record(
        AuditEntry(
            run_id=run_id,
            organization_id=route.organization_id,
            stage=AuditStage.DEDUP_CHECK,
            action=AuditAction.SKIP,
            reason="Duplicate by email",
        )
    )

Design Principles:
- Write to structured logs first, then the database
- Never fail the run if audit logging fails
"""

from datetime import datetime, timezone

from psycopg.types.json import Jsonb

from candidate_intake.db.pool import db_pool
from candidate_intake.features.candidate_pipeline.domain import AuditEntry
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class AuditRecorder:
    """Best-effort writer for pipeline_audit_log."""

    @staticmethod
    async def record(entry: AuditEntry) -> bool:
        """
        Log an audit entry to structured logs and the database.

        Returns:
            True if the row was written, False if the insert failed (never raises)
        """
        stage = entry.stage.value
        action = entry.action.value

        logger.info(
            "Pipeline audit",
            run_id=entry.run_id,
            organization_id=entry.organization_id,
            email_queue_id=entry.email_queue_id,
            stage=stage,
            audit_action=action,
            reason=entry.reason,
            candidate_id=entry.candidate_id,
        )

        try:
            async with db_pool.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO pipeline_audit_log (
                        run_id, email_queue_id, user_id, organization_id,
                        stage, action, reason, context,
                        candidate_id, candidate_name, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        entry.run_id,
                        entry.email_queue_id,
                        entry.user_id,
                        entry.organization_id,
                        stage,
                        action,
                        entry.reason,
                        Jsonb(entry.context),
                        entry.candidate_id,
                        entry.candidate_name,
                        datetime.now(timezone.utc),
                    ),
                )

            return True

        except Exception as e:
            # The run outcome must not depend on the audit trail
            logger.error(
                "Failed to write pipeline audit log to database",
                error=str(e),
                error_type=type(e).__name__,
                stage=stage,
                run_id=entry.run_id,
                fallback_data={
                    "run_id": entry.run_id,
                    "email_queue_id": entry.email_queue_id,
                    "organization_id": entry.organization_id,
                    "stage": stage,
                    "action": action,
                    "reason": entry.reason,
                    "context": entry.context,
                    "candidate_name": entry.candidate_name,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
            return False


audit_recorder = AuditRecorder()
