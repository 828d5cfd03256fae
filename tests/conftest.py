import base64
from datetime import date

import pytest

from candidate_intake.auth.verify import service_role_dependency
from candidate_intake.db.helpers import DatabaseError, UniqueViolationError
from candidate_intake.features.candidate_pipeline.domain import (
    CandidateDraft,
    MessageStatus,
    QualificationType,
    TenantRoute,
)
from candidate_intake.features.candidate_pipeline.eligibility import EligibilityGate
from candidate_intake.features.candidate_pipeline.repository.institution_registry_repository import (
    normalize_institution,
)
from candidate_intake.features.candidate_pipeline.services.coordinator import RunCoordinator
from candidate_intake.models.domain.gmail_domain import GmailMessage
from candidate_intake.services.google_gmail_service import GoogleGmailError

ORG_ID = "org-1"
USER_ID = "user-1"


@pytest.fixture
def auth_override():
    def _override():
        return {"role": "service_role"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[service_role_dependency] = auth_override

    return _apply


def build_gmail_payload(
    message_id: str,
    attachments: list[tuple[str, str, int]] = (),
    *,
    date_header: str | None = "Tue, 14 Jan 2025 09:30:00 +0200",
    internal_date: str | None = "1736839800000",
    subject: str = "Application",
    sender: str = "Applicant <applicant@example.com>",
) -> dict:
    """Raw Gmail API message resource with one part per attachment."""
    headers = [
        {"name": "From", "value": sender},
        {"name": "Subject", "value": subject},
    ]
    if date_header:
        headers.append({"name": "Date", "value": date_header})

    parts = [{"mimeType": "text/plain", "filename": "", "body": {"size": 10, "data": "aGVsbG8"}}]
    for index, (filename, mime_type, size) in enumerate(attachments):
        parts.append(
            {
                "mimeType": mime_type,
                "filename": filename,
                "body": {"size": size, "attachmentId": f"{message_id}-att-{index}"},
            }
        )

    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "internalDate": internal_date,
        "payload": {"mimeType": "multipart/mixed", "headers": headers, "parts": parts},
    }


def make_draft(**overrides) -> CandidateDraft:
    values = {
        "candidate_name": "Thandiwe Mokoena",
        "email_address": "thandiwe@example.co.za",
        "has_education_degree": True,
        "qualification_type": QualificationType.BED,
        "years_teaching_experience": 5,
        "degree_institution_raw": "University of Pretoria",
        "degree_country_raw": "South Africa",
        "countries_raw": ["South Africa"],
        "current_location_raw": "Pretoria",
        "raw_ai_score": 82,
    }
    values.update(overrides)
    return CandidateDraft(**values)


class FakeMailbox:
    def __init__(self):
        self.messages: dict[str, dict] = {}
        self.queries: list[str] = []
        self.list_error: Exception | None = None
        self.list_errors: list[Exception] = []
        self.failing_attachments: set[str] = set()
        self.downloaded: list[str] = []

    def add_message(self, message_id: str, attachments=(), **kwargs) -> None:
        self.messages[message_id] = build_gmail_payload(message_id, list(attachments), **kwargs)

    async def list_message_ids(self, query: str) -> list[str]:
        self.queries.append(query)
        if self.list_errors:
            raise self.list_errors.pop(0)
        if self.list_error:
            raise self.list_error
        return list(self.messages)

    async def get_message(self, message_id: str) -> GmailMessage:
        return GmailMessage(self.messages[message_id])

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        if attachment_id in self.failing_attachments:
            raise GoogleGmailError("Gmail resource not found.", status_code=404)
        self.downloaded.append(attachment_id)
        return base64.b64encode(attachment_id.encode())


class FakeExtractor:
    """Returns the configured drafts (or raises) per filename."""

    def __init__(self):
        self.responses: dict[str, list[CandidateDraft] | Exception] = {}
        self.calls: list[str] = []

    async def extract_candidates(self, document: bytes, mime_type: str, filename: str):
        self.calls.append(filename)
        response = self.responses.get(filename, [])
        if isinstance(response, Exception):
            raise response
        return list(response)


class FakeStore:
    """In-memory stand-in for the route, email_queue, candidate and run repositories."""

    def __init__(self, routes: list[TenantRoute]):
        self.routes = routes
        self.email_queue: dict[str, dict] = {}
        self.candidates: list[dict] = []
        self.runs: dict[str, dict] = {}
        self.raced_message_ids: set[str] = set()
        self.failing_inserts: set[str] = set()
        self.failing_lookups: set[str] = set()
        self.routes_error: Exception | None = None
        self.create_error: Exception | None = None

    # routes
    async def fetch_routes(self):
        if self.routes_error:
            raise self.routes_error
        return list(self.routes)

    # email_queue
    async def exists(self, gmail_message_id: str, organization_id: str) -> bool:
        return any(
            row["gmail_message_id"] == gmail_message_id
            and row["organization_id"] == organization_id
            for row in self.email_queue.values()
        )

    async def claim(self, *, route, run_id, gmail_message_id, email_date, attachment_count, **kwargs):
        if gmail_message_id in self.raced_message_ids or await self.exists(
            gmail_message_id, route.organization_id
        ):
            raise UniqueViolationError("duplicate key", operation="fetch_one")
        row_id = f"eq-{len(self.email_queue) + 1}"
        self.email_queue[row_id] = {
            "gmail_message_id": gmail_message_id,
            "organization_id": route.organization_id,
            "run_id": run_id,
            "email_date": email_date,
            "attachment_count": attachment_count,
            "status": MessageStatus.PROCESSING,
            "error_message": None,
        }
        return row_id

    async def update_status(self, email_queue_id, status, error_message=None):
        self.email_queue[email_queue_id]["status"] = status
        self.email_queue[email_queue_id]["error_message"] = error_message

    def status_of(self, gmail_message_id: str):
        for row in self.email_queue.values():
            if row["gmail_message_id"] == gmail_message_id:
                return row["status"]
        return None

    # candidates
    async def find_recent_duplicate(self, organization_id, draft, window_hours=None):
        if draft.candidate_name in self.failing_lookups:
            raise DatabaseError(
                "Query failed: canceling statement due to statement timeout", operation="fetch_one"
            )
        email = (draft.email_address or "").strip().lower()
        for row in self.candidates:
            if row["organization_id"] != organization_id:
                continue
            if email:
                if (row["draft"].email_address or "").strip().lower() == email:
                    return {"id": row["id"], "candidate_name": row["draft"].candidate_name, "match_by": "email"}
            elif row["draft"].candidate_name.strip().lower() == draft.candidate_name.strip().lower():
                return {"id": row["id"], "candidate_name": row["draft"].candidate_name, "match_by": "name"}
        return None

    async def insert_candidate(self, route, draft, *, canonical_day, date_received):
        if draft.candidate_name in self.failing_inserts:
            raise DatabaseError("Query failed: connection reset", operation="fetch_one")
        candidate_id = f"cand-{len(self.candidates) + 1}"
        self.candidates.append(
            {
                "id": candidate_id,
                "organization_id": route.organization_id,
                "draft": draft,
                "canonical_day": canonical_day,
                "date_received": date_received,
            }
        )
        return candidate_id

    # processing_runs
    async def create(self, target_day: date, triggered_by, config=None) -> str:
        if self.create_error:
            raise self.create_error
        run_id = f"run-{len(self.runs) + 1}"
        self.runs[run_id] = {
            "target_day": target_day,
            "triggered_by": triggered_by,
            "status": "running",
            "finalized": 0,
        }
        return run_id

    async def finalize(self, run_id, status, stats, duration_ms, error_message=None):
        run = self.runs[run_id]
        run.update(
            status=status,
            stats=stats.to_dict(),
            duration_ms=duration_ms,
            error_message=error_message,
        )
        run["finalized"] += 1


class FakeAudit:
    def __init__(self):
        self.entries = []

    async def record(self, entry) -> bool:
        self.entries.append(entry)
        return True

    def find(self, stage, action=None):
        return [
            e
            for e in self.entries
            if e.stage == stage and (action is None or e.action == action)
        ]


class FakeRegistry:
    def __init__(self, variants: dict[str, str]):
        # normalized variant -> canonical university
        self.variants = {normalize_institution(v): c for v, c in variants.items()}
        self.error: Exception | None = None

    async def strict_match(self, institution):
        if self.error:
            raise self.error
        norm = normalize_institution(institution)
        if not norm:
            return None
        for variant, canonical in self.variants.items():
            if norm in variant:
                return canonical
        return None

    async def broad_match(self, institution):
        canonical = await self.strict_match(institution)
        if canonical:
            return canonical
        words = f" {normalize_institution(institution)} "
        for variant, canonical in self.variants.items():
            if len(variant) >= 3 and f" {variant} " in words:
                return canonical
        return None


@pytest.fixture
def tenant_route():
    return TenantRoute(
        id="route-1",
        source_email="cvs@agency.example",
        user_id=USER_ID,
        organization_id=ORG_ID,
        inbox_tz_id="Africa/Johannesburg",
    )


@pytest.fixture
def registry():
    return FakeRegistry(
        {
            "University of Pretoria": "University of Pretoria",
            "UP": "University of Pretoria",
            "University of Cape Town": "University of Cape Town",
            "UCT": "University of Cape Town",
            "Wits": "University of the Witwatersrand",
        }
    )


@pytest.fixture
def mailbox():
    return FakeMailbox()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def store(tenant_route):
    return FakeStore([tenant_route])


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def coordinator(mailbox, extractor, store, audit, registry):
    return RunCoordinator(
        mailbox=mailbox,
        extractor=extractor,
        gate=EligibilityGate(registry=registry),
        audit=audit,
        routes=store,
        messages=store,
        candidates=store,
        runs=store,
        deadline_seconds=0,
    )


@pytest.fixture
def draft_factory():
    return make_draft


@pytest.fixture
def gmail_payload_factory():
    return build_gmail_payload
