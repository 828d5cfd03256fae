"""
Repository for the email_queue table.

A row per (gmail_message_id, organization_id) is the idempotency record for
the pipeline: inserting it with status "processing" is the claim on the
message, and the unique constraint turns a concurrent second claim into a
UniqueViolationError.
"""

from datetime import datetime

from candidate_intake.db.helpers import execute_query, fetch_one, fetch_val
from candidate_intake.features.candidate_pipeline.domain import MessageStatus, TenantRoute
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EmailQueueRepository:
    """Persistence helpers for inbound message records."""

    @classmethod
    async def exists(cls, gmail_message_id: str, organization_id: str) -> bool:
        query = """
            SELECT EXISTS (
                SELECT 1 FROM email_queue
                WHERE gmail_message_id = %s AND organization_id = %s
            ) AS already_seen
        """
        return bool(await fetch_val(query, (gmail_message_id, organization_id)))

    @classmethod
    async def claim(
        cls,
        *,
        route: TenantRoute,
        run_id: str,
        gmail_message_id: str,
        gmail_thread_id: str | None,
        sender: str | None,
        subject: str | None,
        email_date: datetime | None,
        attachment_count: int,
    ) -> str:
        """
        Insert the message row with status "processing" and return its id.

        Raises:
            UniqueViolationError: another run already claimed this message
        """
        query = """
            INSERT INTO email_queue (
                gmail_message_id, gmail_thread_id, route_id, user_id,
                organization_id, sender_email, subject,
                email_date, attachment_count, status, run_id
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """
        row = await fetch_one(
            query,
            (
                gmail_message_id,
                gmail_thread_id,
                route.id,
                route.user_id,
                route.organization_id,
                sender,
                subject,
                email_date,
                attachment_count,
                MessageStatus.PROCESSING.value,
                run_id,
            ),
        )
        email_queue_id = str(row["id"])
        logger.debug(
            "Message claimed",
            email_queue_id=email_queue_id,
            gmail_message_id=gmail_message_id,
            organization_id=route.organization_id,
        )
        return email_queue_id

    @classmethod
    async def update_status(
        cls, email_queue_id: str, status: MessageStatus, error_message: str | None = None
    ) -> None:
        query = """
            UPDATE email_queue
            SET status = %s,
                error_message = %s,
                processed_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (status.value, error_message, email_queue_id))
