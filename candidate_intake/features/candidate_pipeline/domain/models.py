"""
Domain models for the candidate intake pipeline.

Closed enums for every status/stage/action string the pipeline writes, the
transient CandidateDraft produced by extraction, and the mutable RunStats
aggregate the coordinator threads through a run.
"""

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class RunStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class MessageStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TriggerSource(StrEnum):
    CRON = "cron"
    MANUAL = "manual"
    BACKFILL = "backfill"


class AuditStage(StrEnum):
    EMAIL_FETCHED = "email_fetched"
    ATTACHMENT_DOWNLOADED = "attachment_downloaded"
    ATTACHMENT_SKIPPED = "attachment_skipped"
    AI_EXTRACTION = "ai_extraction"
    AI_NOT_CV = "ai_not_cv"
    AI_ERROR = "ai_error"
    QUALIFICATION_GATE = "qualification_gate"
    HALLUCINATION_CHECK = "hallucination_check"
    DEDUP_CHECK = "dedup_check"
    CANDIDATE_INSERTED = "candidate_inserted"
    CANDIDATE_REJECTED = "candidate_rejected"
    CANDIDATE_SKIPPED = "candidate_skipped"
    ERROR = "error"


class AuditAction(StrEnum):
    PASS = "pass"
    REJECT = "reject"
    SKIP = "skip"
    FLAG = "flag"
    ERROR = "error"
    INFO = "info"


class QualificationType(StrEnum):
    BED = "BEd"
    BA_EDUCATION = "BA_Education"
    BSC_EDUCATION = "BSc_Education"
    BCOM_EDUCATION = "BCom_Education"
    PGCE = "PGCE"
    HDE = "HDE"
    DIPLOMA = "Diploma"
    CERTIFICATE = "Certificate"
    OTHER = "Other"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "QualificationType":
        """Case-insensitive lookup; anything unrecognised is UNKNOWN."""
        text = str(value or "").strip().lower().replace(" ", "_")
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.UNKNOWN

    @property
    def is_degree(self) -> bool:
        return self not in (QualificationType.DIPLOMA, QualificationType.CERTIFICATE)


@dataclass(slots=True)
class TenantRoute:
    """An inbound_email_routes row: one mailbox mapped to its owning tenant."""

    id: str
    source_email: str
    user_id: str
    organization_id: str
    inbox_tz_id: str


@dataclass(slots=True)
class AttachmentRef:
    """Attachment metadata taken from the message payload, before download."""

    filename: str
    mime_type: str
    size: int
    attachment_id: str


@dataclass(slots=True)
class AdmissionDecision:
    allowed: bool
    reason: str


@dataclass(slots=True)
class CandidateDraft:
    """One candidate as returned by extraction, not yet screened."""

    candidate_name: str
    email_address: str | None = None
    contact_number: str | None = None
    educational_qualifications_raw: str | None = None
    degree_institution_raw: str | None = None
    degree_country_raw: str | None = None
    has_education_degree: bool = False
    qualification_type: QualificationType = QualificationType.UNKNOWN
    years_teaching_experience: float = 0
    teaching_phase_specialisation: str = "Unknown"
    teaching_phase_alignment: str = "unknown"
    has_tefl: bool = False
    has_tesol: bool = False
    has_celta: bool = False
    countries_raw: list[str] = field(default_factory=list)
    current_location_raw: str | None = None
    raw_ai_score: int = 0
    ai_notes: str | None = None


@dataclass(slots=True)
class GateResult:
    action: AuditAction  # PASS, FLAG or REJECT
    reason: str
    flags: list[str] = field(default_factory=list)
    signals: dict[str, bool] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.action is not AuditAction.REJECT


@dataclass(slots=True)
class AuditEntry:
    run_id: str
    organization_id: str
    stage: AuditStage
    action: AuditAction
    reason: str | None = None
    user_id: str | None = None
    email_queue_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    candidate_id: str | None = None
    candidate_name: str | None = None


@dataclass(slots=True)
class RunStats:
    """Per-run counters, mutated in place by the coordinator."""

    routes_processed: int = 0
    emails_fetched: int = 0
    attachments_total: int = 0
    attachments_processed: int = 0
    attachments_skipped: int = 0
    candidates_extracted: int = 0
    candidates_inserted: int = 0
    candidates_rejected: int = 0
    candidates_duplicates: int = 0
    ai_calls_made: int = 0
    errors_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class RunResult:
    """What a trigger gets back once a run has finished."""

    run_id: str | None
    target_day: str
    status: RunStatus
    duration_ms: int
    stats: RunStats
    error: str | None = None
