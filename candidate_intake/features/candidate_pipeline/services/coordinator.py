"""
Candidate processing run coordinator.

One run covers one target day across every inbound route:

    routes -> messages -> attachments -> drafts

Each message is claimed through an email_queue insert before any work is
done on it, so a message already seen by an earlier (or concurrent) run is
never processed twice. Failures are contained at the smallest enclosing
unit: an attachment failure does not stop its message, a message failure
does not stop its route, a route failure does not stop the run.
"""

import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from datetime import time as dt_time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from candidate_intake.config import settings
from candidate_intake.db.helpers import DatabaseError, UniqueViolationError
from candidate_intake.features.candidate_pipeline.admission import check_attachment
from candidate_intake.features.candidate_pipeline.domain import (
    AttachmentRef,
    AuditAction,
    AuditEntry,
    AuditStage,
    CandidateDraft,
    MessageStatus,
    RunResult,
    RunStats,
    RunStatus,
    TenantRoute,
    TriggerSource,
)
from candidate_intake.features.candidate_pipeline.eligibility import EligibilityGate
from candidate_intake.features.candidate_pipeline.fabrication import is_fabricated_name
from candidate_intake.features.candidate_pipeline.repository.candidate_repository import (
    CandidateRepository,
)
from candidate_intake.features.candidate_pipeline.repository.email_queue_repository import (
    EmailQueueRepository,
)
from candidate_intake.features.candidate_pipeline.repository.processing_run_repository import (
    ProcessingRunRepository,
)
from candidate_intake.features.candidate_pipeline.repository.route_repository import (
    RouteRepository,
)
from candidate_intake.features.candidate_pipeline.services.mailbox import GmailMailbox
from candidate_intake.infrastructure.audit import audit_recorder
from candidate_intake.infrastructure.observability.logging import get_logger, log_run_summary
from candidate_intake.services.extraction_service import ExtractionError, ExtractionService
from candidate_intake.services.google_gmail_service import GoogleGmailError
from candidate_intake.services.google_oauth_service import GoogleOAuthError

logger = get_logger(__name__)


class RunStartError(Exception):
    """The run row could not be created, so there is nothing to finalize."""


def reference_timezone() -> ZoneInfo:
    return ZoneInfo(settings.PIPELINE_REFERENCE_TZ)


def resolve_timezone(tz_id: str | None) -> ZoneInfo:
    """Route timezone, or the reference timezone when the id is empty or unknown."""
    if tz_id:
        try:
            return ZoneInfo(tz_id)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown route timezone, using reference", inbox_tz_id=tz_id)
    return reference_timezone()


def default_target_day(now: datetime | None = None) -> date:
    """Yesterday in the reference timezone."""
    tz = reference_timezone()
    current = now.astimezone(tz) if now else datetime.now(tz)
    return current.date() - timedelta(days=1)


def day_window(target_day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[start, end) of the calendar day in the given timezone."""
    start = datetime.combine(target_day, dt_time.min, tzinfo=tz)
    end = datetime.combine(target_day + timedelta(days=1), dt_time.min, tzinfo=tz)
    return start, end


def build_search_query(start: datetime, end: datetime) -> str:
    return (
        f"in:inbox has:attachment "
        f"after:{int(start.timestamp())} before:{int(end.timestamp())}"
    )


def canonical_day(received_at: datetime, tz: ZoneInfo) -> date:
    """Calendar date of the message timestamp as seen in the route timezone."""
    return received_at.astimezone(tz).date()


@dataclass(slots=True)
class _RunContext:
    run_id: str
    target_day: date
    stats: RunStats
    started: float
    deadline_reached: bool = False


@dataclass(slots=True)
class _MessageContext:
    run: _RunContext
    route: TenantRoute
    tz: ZoneInfo
    gmail_message_id: str
    email_queue_id: str
    received_at: datetime | None

    def entry(self, stage: AuditStage, action: AuditAction, reason: str, **kwargs) -> AuditEntry:
        return AuditEntry(
            run_id=self.run.run_id,
            organization_id=self.route.organization_id,
            user_id=self.route.user_id,
            email_queue_id=self.email_queue_id,
            stage=stage,
            action=action,
            reason=reason,
            **kwargs,
        )


class RunCoordinator:
    """
    Executes one processing run.

    Collaborators are injectable; the defaults talk to Gmail, OpenAI and
    Postgres. The mailbox and extractor are built lazily so a missing
    credential fails the run instead of the constructor.
    """

    def __init__(
        self,
        *,
        mailbox=None,
        extractor=None,
        gate: EligibilityGate | None = None,
        audit=audit_recorder,
        routes=RouteRepository,
        messages=EmailQueueRepository,
        candidates=CandidateRepository,
        runs=ProcessingRunRepository,
        clock=time.monotonic,
        deadline_seconds: float | None = None,
    ):
        self.mailbox = mailbox
        self.extractor = extractor
        self.gate = gate or EligibilityGate()
        self.audit = audit
        self.routes = routes
        self.messages = messages
        self.candidates = candidates
        self.runs = runs
        self.clock = clock
        self.deadline_seconds = (
            deadline_seconds
            if deadline_seconds is not None
            else settings.PIPELINE_RUN_DEADLINE_SECONDS
        )

    def _ensure_clients(self) -> None:
        if self.mailbox is None:
            self.mailbox = GmailMailbox()
        if self.extractor is None:
            self.extractor = ExtractionService()

    def _elapsed_ms(self, started: float) -> int:
        return int((self.clock() - started) * 1000)

    async def run(
        self,
        target_day: date | None = None,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
    ) -> RunResult:
        """
        Process every route for the target day and finalize the run row.

        Raises:
            RunStartError: If the processing_runs row cannot be created
        """
        started = self.clock()
        day = target_day or default_target_day()
        stats = RunStats()

        try:
            run_id = await self.runs.create(
                day,
                triggered_by,
                config={
                    "reference_tz": settings.PIPELINE_REFERENCE_TZ,
                    "dedup_window_hours": settings.PIPELINE_DEDUP_WINDOW_HOURS,
                    "deadline_seconds": self.deadline_seconds,
                    "model": settings.OPENAI_MODEL,
                },
            )
        except DatabaseError as e:
            logger.error("Failed to create processing run", target_day=day.isoformat(), error=str(e))
            raise RunStartError(f"Failed to create processing run: {e}") from e

        ctx = _RunContext(run_id=run_id, target_day=day, stats=stats, started=started)
        logger.info(
            "Processing run started",
            run_id=run_id,
            target_day=day.isoformat(),
            triggered_by=triggered_by.value,
        )

        try:
            self._ensure_clients()
            routes = await self.routes.fetch_routes()
        except Exception as e:
            duration_ms = self._elapsed_ms(started)
            logger.error(
                "Processing run failed",
                run_id=run_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            try:
                await self.runs.finalize(run_id, RunStatus.FAILED, stats, duration_ms, str(e))
            except DatabaseError as finalize_error:
                logger.error(
                    "Failed to mark processing run as failed",
                    run_id=run_id,
                    error=str(finalize_error),
                )
            log_run_summary(run_id, day.isoformat(), RunStatus.FAILED.value, duration_ms, stats.to_dict())
            return RunResult(
                run_id=run_id,
                target_day=day.isoformat(),
                status=RunStatus.FAILED,
                duration_ms=duration_ms,
                stats=stats,
                error=str(e),
            )

        for route in routes:
            if ctx.deadline_reached:
                break
            try:
                await self._process_route(ctx, route)
            except Exception as e:
                stats.errors_count += 1
                logger.error(
                    "Unexpected route failure",
                    run_id=run_id,
                    source_email=route.source_email,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self.audit.record(
                    AuditEntry(
                        run_id=run_id,
                        organization_id=route.organization_id,
                        user_id=route.user_id,
                        stage=AuditStage.ERROR,
                        action=AuditAction.ERROR,
                        reason=f"Unhandled error processing route {route.source_email}: {e}",
                        context={"route_id": route.id},
                    )
                )
            stats.routes_processed += 1

        status = RunStatus.COMPLETED if stats.errors_count == 0 else RunStatus.COMPLETED_WITH_ERRORS
        duration_ms = self._elapsed_ms(started)
        await self.runs.finalize(run_id, status, stats, duration_ms)

        log_run_summary(run_id, day.isoformat(), status.value, duration_ms, stats.to_dict())
        return RunResult(
            run_id=run_id,
            target_day=day.isoformat(),
            status=status,
            duration_ms=duration_ms,
            stats=stats,
        )

    def _check_deadline(self, ctx: _RunContext) -> bool:
        if ctx.deadline_reached:
            return True
        if self.deadline_seconds and self.deadline_seconds > 0:
            elapsed = self.clock() - ctx.started
            if elapsed >= self.deadline_seconds:
                ctx.deadline_reached = True
        return ctx.deadline_reached

    async def _process_route(self, ctx: _RunContext, route: TenantRoute) -> None:
        tz = resolve_timezone(route.inbox_tz_id)
        start, end = day_window(ctx.target_day, tz)
        query = build_search_query(start, end)

        try:
            message_ids = await self.mailbox.list_message_ids(query)
        except (GoogleGmailError, GoogleOAuthError) as e:
            ctx.stats.errors_count += 1
            await self.audit.record(
                AuditEntry(
                    run_id=ctx.run_id,
                    organization_id=route.organization_id,
                    user_id=route.user_id,
                    stage=AuditStage.EMAIL_FETCHED,
                    action=AuditAction.ERROR,
                    reason=f"Gmail API error: {e}",
                    context={"query": query},
                )
            )
            return

        logger.info(
            "Route messages listed",
            run_id=ctx.run_id,
            source_email=route.source_email,
            message_count=len(message_ids),
        )

        for index, message_id in enumerate(message_ids):
            if self._check_deadline(ctx):
                remaining = len(message_ids) - index
                logger.warning(
                    "Run deadline reached, stopping early",
                    run_id=ctx.run_id,
                    remaining_messages=remaining,
                )
                await self.audit.record(
                    AuditEntry(
                        run_id=ctx.run_id,
                        organization_id=route.organization_id,
                        user_id=route.user_id,
                        stage=AuditStage.ERROR,
                        action=AuditAction.INFO,
                        reason="Run deadline reached; remaining messages left for a later run",
                        context={
                            "deadline_seconds": self.deadline_seconds,
                            "remaining_messages": remaining,
                        },
                    )
                )
                return

            await self._process_message_safely(ctx, route, tz, message_id)

    async def _process_message_safely(
        self, ctx: _RunContext, route: TenantRoute, tz: ZoneInfo, message_id: str
    ) -> None:
        claimed: list[str] = []
        try:
            await self._process_message(ctx, route, tz, message_id, claimed)
        except Exception as e:
            ctx.stats.errors_count += 1
            logger.error(
                "Unexpected message failure",
                run_id=ctx.run_id,
                gmail_message_id=message_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            email_queue_id = claimed[0] if claimed else None
            await self.audit.record(
                AuditEntry(
                    run_id=ctx.run_id,
                    organization_id=route.organization_id,
                    user_id=route.user_id,
                    email_queue_id=email_queue_id,
                    stage=AuditStage.ERROR,
                    action=AuditAction.ERROR,
                    reason=f"Unhandled error processing message {message_id}: {e}",
                    context={"gmail_message_id": message_id},
                )
            )
            if email_queue_id:
                try:
                    await self.messages.update_status(
                        email_queue_id, MessageStatus.FAILED, error_message=str(e)
                    )
                except DatabaseError as status_error:
                    logger.error(
                        "Failed to mark message as failed",
                        email_queue_id=email_queue_id,
                        error=str(status_error),
                    )

    async def _process_message(
        self,
        ctx: _RunContext,
        route: TenantRoute,
        tz: ZoneInfo,
        message_id: str,
        claimed: list[str],
    ) -> None:
        if await self.messages.exists(message_id, route.organization_id):
            logger.debug(
                "Message already queued, skipping",
                gmail_message_id=message_id,
                organization_id=route.organization_id,
            )
            return

        message = await self.mailbox.get_message(message_id)
        received_at = message.received_at
        attachments = message.attachments

        try:
            email_queue_id = await self.messages.claim(
                route=route,
                run_id=ctx.run_id,
                gmail_message_id=message_id,
                gmail_thread_id=message.thread_id,
                sender=message.sender_email,
                subject=message.subject,
                email_date=received_at,
                attachment_count=len(attachments),
            )
        except UniqueViolationError:
            logger.info(
                "Message claimed by another run, skipping",
                gmail_message_id=message_id,
                organization_id=route.organization_id,
            )
            return

        claimed.append(email_queue_id)
        ctx.stats.emails_fetched += 1

        mctx = _MessageContext(
            run=ctx,
            route=route,
            tz=tz,
            gmail_message_id=message_id,
            email_queue_id=email_queue_id,
            received_at=received_at,
        )
        await self.audit.record(
            mctx.entry(
                AuditStage.EMAIL_FETCHED,
                AuditAction.INFO,
                f'Fetched email: "{message.subject}" from {message.sender_email}',
                context={
                    "gmail_message_id": message_id,
                    "subject": message.subject,
                    "sender": message.sender_email,
                    "email_date": received_at.isoformat() if received_at else None,
                    "attachment_count": len(attachments),
                },
            )
        )

        if not attachments:
            await self.messages.update_status(email_queue_id, MessageStatus.SKIPPED)
            return

        any_downloaded = False
        for attachment in attachments:
            if await self._process_attachment(mctx, attachment):
                any_downloaded = True

        final_status = MessageStatus.COMPLETED if any_downloaded else MessageStatus.SKIPPED
        await self.messages.update_status(email_queue_id, final_status)

    async def _process_attachment(self, mctx: _MessageContext, attachment: AttachmentRef) -> bool:
        """Returns True once the attachment body has been downloaded."""
        stats = mctx.run.stats
        stats.attachments_total += 1
        file_context = {
            "filename": attachment.filename,
            "mime_type": attachment.mime_type,
            "size": attachment.size,
        }

        decision = check_attachment(attachment.filename, attachment.mime_type, attachment.size)
        if not decision.allowed:
            stats.attachments_skipped += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.ATTACHMENT_SKIPPED,
                    AuditAction.SKIP,
                    decision.reason,
                    context=file_context,
                )
            )
            return False

        await self.audit.record(
            mctx.entry(
                AuditStage.ATTACHMENT_DOWNLOADED,
                AuditAction.INFO,
                f"Downloading: {attachment.filename} ({attachment.mime_type}, {attachment.size} bytes)",
                context=file_context,
            )
        )

        try:
            document = await self.mailbox.get_attachment(
                mctx.gmail_message_id, attachment.attachment_id
            )
        except (GoogleGmailError, GoogleOAuthError) as e:
            stats.errors_count += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.ATTACHMENT_DOWNLOADED,
                    AuditAction.ERROR,
                    f"Failed to download: {e}",
                    context={"filename": attachment.filename},
                )
            )
            return False

        stats.attachments_processed += 1

        try:
            stats.ai_calls_made += 1
            drafts = await self.extractor.extract_candidates(
                document, attachment.mime_type, attachment.filename
            )
        except ExtractionError as e:
            stats.errors_count += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.AI_ERROR,
                    AuditAction.ERROR,
                    f"Extraction error: {e}",
                    context={"filename": attachment.filename, "api_error": e.api_error},
                )
            )
            return True

        if not drafts:
            await self.audit.record(
                mctx.entry(
                    AuditStage.AI_NOT_CV,
                    AuditAction.SKIP,
                    "Extraction determined this is not a CV",
                    context={"filename": attachment.filename},
                )
            )
            return True

        await self.audit.record(
            mctx.entry(
                AuditStage.AI_EXTRACTION,
                AuditAction.PASS,
                f"Extracted {len(drafts)} candidate(s)",
                context={
                    "filename": attachment.filename,
                    "candidate_names": [d.candidate_name for d in drafts],
                },
            )
        )

        for draft in drafts:
            await self._process_draft(mctx, attachment, draft)
        return True

    async def _process_draft(
        self, mctx: _MessageContext, attachment: AttachmentRef, draft: CandidateDraft
    ) -> None:
        stats = mctx.run.stats
        stats.candidates_extracted += 1
        name = draft.candidate_name

        if is_fabricated_name(name):
            stats.candidates_rejected += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.HALLUCINATION_CHECK,
                    AuditAction.REJECT,
                    f'Suspected fabricated/placeholder name: "{name}"',
                    candidate_name=name,
                    context={"filename": attachment.filename},
                )
            )
            return

        await self.audit.record(
            mctx.entry(
                AuditStage.HALLUCINATION_CHECK,
                AuditAction.PASS,
                "Name passes fabrication check",
                candidate_name=name,
            )
        )

        try:
            gate = await self.gate.evaluate(draft)
        except DatabaseError as e:
            stats.errors_count += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.QUALIFICATION_GATE,
                    AuditAction.ERROR,
                    f"Institution registry lookup failed: {e}",
                    candidate_name=name,
                    context={"degree_institution_raw": draft.degree_institution_raw},
                )
            )
            return

        gate_context = {
            "has_education_degree": draft.has_education_degree,
            "qualification_type": draft.qualification_type.value,
            "degree_institution_raw": draft.degree_institution_raw,
            "degree_country_raw": draft.degree_country_raw,
            "countries_raw": draft.countries_raw,
            "current_location_raw": draft.current_location_raw,
            **gate.signals,
        }
        if gate.flags:
            gate_context["flags"] = gate.flags

        await self.audit.record(
            mctx.entry(
                AuditStage.QUALIFICATION_GATE,
                gate.action,
                gate.reason,
                candidate_name=name,
                context=gate_context,
            )
        )

        if not gate.passed:
            stats.candidates_rejected += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.CANDIDATE_REJECTED,
                    AuditAction.REJECT,
                    gate.reason,
                    candidate_name=name,
                )
            )
            return

        try:
            duplicate = await self.candidates.find_recent_duplicate(
                mctx.route.organization_id, draft
            )
        except DatabaseError as e:
            stats.errors_count += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.DEDUP_CHECK,
                    AuditAction.ERROR,
                    f"Duplicate lookup failed: {e}",
                    candidate_name=name,
                )
            )
            return

        if duplicate:
            stats.candidates_duplicates += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.DEDUP_CHECK,
                    AuditAction.SKIP,
                    f"Duplicate: matches existing candidate {duplicate['id']}",
                    candidate_name=name,
                    context={
                        "existing_id": duplicate["id"],
                        "existing_name": duplicate.get("candidate_name"),
                        "match_by": duplicate.get("match_by"),
                    },
                )
            )
            await self.audit.record(
                mctx.entry(
                    AuditStage.CANDIDATE_SKIPPED,
                    AuditAction.SKIP,
                    "Duplicate within dedup window",
                    candidate_name=name,
                )
            )
            return

        await self.audit.record(
            mctx.entry(
                AuditStage.DEDUP_CHECK,
                AuditAction.PASS,
                "No duplicate found",
                candidate_name=name,
            )
        )

        received_at = mctx.received_at
        day = canonical_day(received_at, mctx.tz) if received_at else mctx.run.target_day

        try:
            candidate_id = await self.candidates.insert_candidate(
                mctx.route,
                draft,
                canonical_day=day,
                date_received=received_at,
            )
        except DatabaseError as e:
            stats.errors_count += 1
            await self.audit.record(
                mctx.entry(
                    AuditStage.CANDIDATE_INSERTED,
                    AuditAction.ERROR,
                    f"Insert failed: {e}",
                    candidate_name=name,
                )
            )
            return

        stats.candidates_inserted += 1
        await self.audit.record(
            mctx.entry(
                AuditStage.CANDIDATE_INSERTED,
                AuditAction.PASS,
                "Successfully inserted into candidates table",
                candidate_id=candidate_id,
                candidate_name=name,
                context={
                    "qualification_type": draft.qualification_type.value,
                    "raw_ai_score": draft.raw_ai_score,
                    "canonical_day": day.isoformat(),
                    "flags": gate.flags,
                },
            )
        )
