"""
Repository for the candidates table: duplicate lookup and insert.

Candidate rows are insert-only. Scoring reads them through a view that
joins degree_institution_norm against the institution registry, so the
normalized institution is written with the same rule the registry lookup
uses.
"""

from datetime import date, datetime
from typing import Any

from candidate_intake.config import settings
from candidate_intake.db.helpers import fetch_one
from candidate_intake.features.candidate_pipeline.domain import CandidateDraft, TenantRoute
from candidate_intake.features.candidate_pipeline.repository.institution_registry_repository import (
    normalize_institution,
)
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CandidateRepository:
    """Persistence helpers for committed candidate records."""

    @classmethod
    async def find_recent_duplicate(
        cls,
        organization_id: str,
        draft: CandidateDraft,
        window_hours: int | None = None,
    ) -> dict[str, Any] | None:
        """
        Look for an existing candidate in the same organization created within
        the dedup window.

        Matches on email (trimmed, case-insensitive) when the draft has one,
        otherwise on the trimmed name.

        Returns:
            {"id", "candidate_name", "match_by"} for the first match, or None
        """
        hours = window_hours if window_hours is not None else settings.PIPELINE_DEDUP_WINDOW_HOURS
        email = (draft.email_address or "").strip()

        if email:
            match_by = "email"
            query = """
                SELECT id, candidate_name
                FROM candidates
                WHERE organization_id = %s
                  AND created_at >= NOW() - make_interval(hours => %s)
                  AND lower(trim(email_address)) = lower(%s)
                ORDER BY created_at DESC
                LIMIT 1
            """
            params = (organization_id, hours, email)
        else:
            match_by = "name"
            query = """
                SELECT id, candidate_name
                FROM candidates
                WHERE organization_id = %s
                  AND created_at >= NOW() - make_interval(hours => %s)
                  AND lower(trim(candidate_name)) = lower(%s)
                ORDER BY created_at DESC
                LIMIT 1
            """
            params = (organization_id, hours, draft.candidate_name.strip())

        row = await fetch_one(query, params)
        if not row:
            return None

        return {
            "id": str(row["id"]),
            "candidate_name": row.get("candidate_name"),
            "match_by": match_by,
        }

    @classmethod
    async def insert_candidate(
        cls,
        route: TenantRoute,
        draft: CandidateDraft,
        *,
        canonical_day: date,
        date_received: datetime | None,
    ) -> str:
        query = """
            INSERT INTO candidates (
                user_id, organization_id, source_email, canonical_day, date_received,
                candidate_name, email_address, contact_number,
                educational_qualifications_raw, degree_institution_raw, degree_country_raw,
                has_education_degree, qualification_type, years_teaching_experience,
                teaching_phase_specialisation, teaching_phase_alignment,
                has_tefl, has_tesol, has_celta,
                countries_raw, current_location_raw, raw_ai_score, ai_notes,
                degree_institution_norm
            )
            VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s, %s,
                %s, %s, %s,
                %s, %s,
                %s, %s, %s,
                %s, %s, %s, %s,
                %s
            )
            RETURNING id
        """
        institution_norm = normalize_institution(draft.degree_institution_raw) or None

        row = await fetch_one(
            query,
            (
                route.user_id,
                route.organization_id,
                route.source_email,
                canonical_day,
                date_received,
                draft.candidate_name.strip(),
                draft.email_address,
                draft.contact_number,
                draft.educational_qualifications_raw,
                draft.degree_institution_raw,
                draft.degree_country_raw,
                draft.has_education_degree,
                draft.qualification_type.value,
                draft.years_teaching_experience,
                draft.teaching_phase_specialisation,
                draft.teaching_phase_alignment,
                draft.has_tefl,
                draft.has_tesol,
                draft.has_celta,
                draft.countries_raw,
                draft.current_location_raw,
                draft.raw_ai_score,
                draft.ai_notes,
                institution_norm,
            ),
        )
        candidate_id = str(row["id"])
        logger.info(
            "Candidate inserted",
            candidate_id=candidate_id,
            organization_id=route.organization_id,
            canonical_day=canonical_day.isoformat(),
        )
        return candidate_id
