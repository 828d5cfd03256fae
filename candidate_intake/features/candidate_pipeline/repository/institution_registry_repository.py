"""
Lookups against the sa_university_variants registry.

The registry is curated elsewhere; the pipeline only reads it.
"""

import re

from candidate_intake.db.helpers import fetch_one
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_institution(name: str | None) -> str:
    """Lowercase, collapse non-alphanumeric runs to one space, trim."""
    if not name:
        return ""
    return _NON_ALNUM.sub(" ", name.lower()).strip()


class InstitutionRegistryRepository:
    """Strict and broad variant matching for degree institutions."""

    @classmethod
    async def strict_match(cls, institution: str | None) -> str | None:
        """
        Canonical university whose normalized variant contains the normalized
        institution, or None.
        """
        norm = normalize_institution(institution)
        if not norm:
            return None

        query = """
            SELECT canonical_university
            FROM sa_university_variants
            WHERE norm_variant ILIKE %s
            LIMIT 1
        """
        row = await fetch_one(query, (f"%{norm}%",))
        return row["canonical_university"] if row else None

    @classmethod
    async def broad_match(cls, institution: str | None) -> str | None:
        """
        Strict match, or any registry variant of three or more characters that
        appears as a whole word inside the normalized institution.
        """
        norm = normalize_institution(institution)
        if not norm:
            return None

        canonical = await cls.strict_match(institution)
        if canonical:
            return canonical

        query = """
            SELECT canonical_university
            FROM sa_university_variants
            WHERE length(norm_variant) >= 3
              AND %s ~ ('(^| )' || norm_variant || '( |$)')
            ORDER BY length(norm_variant) DESC
            LIMIT 1
        """
        row = await fetch_one(query, (norm,))
        if row:
            logger.debug(
                "Institution matched by contained variant",
                institution_norm=norm,
                canonical_university=row["canonical_university"],
            )
        return row["canonical_university"] if row else None
