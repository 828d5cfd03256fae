"""
Qualification gate for extracted candidates.

Hard gates reject; soft gates and soft signals only add flags. Evaluated in a
fixed order, the first hard failure wins:

1. education degree (diploma or certificate alone is not enough)
2. South Africa connection via countries, degree country, current location,
   or a registry match on the degree institution
3. (soft) institution not found in the registry under the broad match
"""

import re

from candidate_intake.features.candidate_pipeline.domain import (
    AuditAction,
    CandidateDraft,
    GateResult,
)
from candidate_intake.features.candidate_pipeline.repository.institution_registry_repository import (
    InstitutionRegistryRepository,
)
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_SA_COUNTRY = re.compile(r"south\s*africa|^sa$|^rsa$", re.IGNORECASE)
_SA_DEGREE_COUNTRY = re.compile(r"south\s*africa", re.IGNORECASE)
_SA_LOCATION = re.compile(
    r"south\s*africa|johannesburg|cape\s*town|pretoria|durban|bloemfontein|"
    r"port\s*elizabeth|east\s*london|polokwane|nelspruit|pietermaritzburg|kimberley|"
    r"rustenburg|soweto|centurion|sandton|stellenbosch|george|knysna|umhlanga",
    re.IGNORECASE,
)


class EligibilityGate:
    """Deterministic eligibility rules backed by the institution registry."""

    def __init__(self, registry=InstitutionRegistryRepository):
        self.registry = registry

    async def evaluate(self, draft: CandidateDraft) -> GateResult:
        qual = draft.qualification_type
        signals = self.country_signals(draft)

        if not draft.has_education_degree:
            return GateResult(
                AuditAction.REJECT,
                f"No education degree. qualification_type={qual.value}",
                signals=signals,
            )
        if not qual.is_degree:
            return GateResult(
                AuditAction.REJECT,
                f"Qualification is {qual.value} only, not a degree",
                signals=signals,
            )

        institution_match = None
        if draft.degree_institution_raw:
            institution_match = await self.registry.strict_match(draft.degree_institution_raw)
        signals["sa_institution"] = institution_match is not None

        if not any(signals.values()):
            return GateResult(
                AuditAction.REJECT,
                "No South Africa connection found. "
                f"countries={draft.countries_raw}, "
                f"degree_country={draft.degree_country_raw}, "
                f"location={draft.current_location_raw}, "
                f"institution={draft.degree_institution_raw}",
                signals=signals,
            )

        flags: list[str] = []
        if draft.degree_institution_raw and institution_match is None:
            broad = await self.registry.broad_match(draft.degree_institution_raw)
            if broad is None:
                flags.append(
                    f'Institution "{draft.degree_institution_raw}" not found in '
                    "sa_university_variants, may need new variant added"
                )

        years = draft.years_teaching_experience
        if years < 1:
            flags.append("Less than 1 year experience, may be student or new graduate")
        elif years < 2:
            flags.append("Limited experience (< 2 years)")

        if flags:
            return GateResult(
                AuditAction.FLAG, f"Passed with flags: {'; '.join(flags)}", flags, signals
            )
        return GateResult(AuditAction.PASS, "Passed all qualification gates", signals=signals)

    @staticmethod
    def country_signals(draft: CandidateDraft) -> dict[str, bool]:
        """The three text-only South Africa signals, keyed for audit context."""
        return {
            "sa_country": any(_SA_COUNTRY.search(c.strip()) for c in draft.countries_raw if c),
            "sa_degree_country": bool(_SA_DEGREE_COUNTRY.search(draft.degree_country_raw or "")),
            "sa_location": bool(_SA_LOCATION.search(draft.current_location_raw or "")),
        }
