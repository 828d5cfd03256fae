# candidate_intake/services/extraction_service.py
"""
OpenAI Service for CV Extraction
Sends one attachment per call to the chat completions API and turns the JSON
reply into at most one CandidateDraft.
"""

import asyncio
import base64
import json
import math
from typing import Any

import openai
from openai import AsyncOpenAI

from candidate_intake.config import settings
from candidate_intake.features.candidate_pipeline.domain import CandidateDraft, QualificationType
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a CV parsing assistant for a South African teacher recruitment agency. Your job is to determine if a document is a CV/resume and, if so, extract structured candidate data.

CRITICAL RULES:
1. Return ONLY valid JSON. No markdown, no explanation, no preamble.
2. If the document is NOT a CV (e.g., cover letter, certificate, transcript, reference letter, ID document), return exactly: {"candidates": []}
3. NEVER fabricate or invent candidate data. If information is not present in the document, use null or appropriate defaults.
4. Extract ALL information visible in the document. Do not summarize or omit details.
5. A document contains exactly 0 or 1 candidates. Never return more than 1 candidate per document.

EXTRACTION FIELDS (return these for each candidate):
{
  "candidates": [{
    "candidate_name": "Full name, no titles (Mr/Mrs/Dr). string, required",
    "email_address": "Email from CV. string or null",
    "contact_number": "Phone number. string or null",
    "educational_qualifications_raw": "ALL qualifications listed verbatim, semicolon-separated. string",
    "degree_institution_raw": "University/institution of their education/teaching degree. string or null",
    "degree_country_raw": "Country of that institution. string or null",
    "has_education_degree": "true if they have BEd, BA Education, BSc Education, BCom Education, PGCE+degree, or HDE. false for diploma-only, certificate-only, or studying. boolean",
    "qualification_type": "One of: BEd, BA_Education, BSc_Education, BCom_Education, PGCE, HDE, Diploma, Certificate, Other, Unknown. string",
    "years_teaching_experience": "Total years of teaching experience. Estimate from employment dates if not stated explicitly. 0 if unknown or student. number",
    "teaching_phase_specialisation": "One of: Foundation, Intermediate, Senior, FET, Multiple, Unknown. string",
    "teaching_phase_alignment": "One of: aligned, partial, not_aligned, unknown. Based on whether their qualification matches the phase they teach. string",
    "has_tefl": "boolean",
    "has_tesol": "boolean",
    "has_celta": "boolean",
    "countries_raw": "Array of countries mentioned (nationality, work history, education). string[]",
    "current_location_raw": "Current city/country. string or null",
    "raw_ai_score": "0-100 holistic score: 80+ = strong SA-qualified teacher, 50-79 = qualified but gaps, 30-49 = borderline, <30 = likely unqualified. integer",
    "ai_notes": "1-3 sentences explaining the score. string"
  }]
}

SOUTH AFRICAN CONTEXT:
- BEd = Bachelor of Education (4 years)
- PGCE = Postgraduate Certificate in Education (1 year, requires underlying degree)
- HDE = Higher Diploma in Education (legacy qualification, treat as degree-equivalent)
- Foundation Phase = Grades R-3, Intermediate = Grades 4-6, Senior = Grades 7-9, FET = Grades 10-12
- SACE = South African Council for Educators (registration, not a qualification)
- Common SA universities: UCT, Wits, UP, Stellenbosch, UNISA, NWU, UJ, UFS, UKZN, Rhodes, Nelson Mandela, etc."""

TEACHING_PHASES = {"Foundation", "Intermediate", "Senior", "FET", "Multiple", "Unknown"}
PHASE_ALIGNMENTS = {"aligned", "partial", "not_aligned", "unknown"}


class ExtractionError(Exception):
    """Raised when the extraction call or its response parsing fails."""

    def __init__(self, message: str, api_error: str | None = None):
        super().__init__(message)
        self.api_error = api_error


def _strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a"):
        return None
    return text


def _as_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(number, 0.0)


def _as_score(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    score = int(round(number))
    return min(max(score, 0), 100)


def coerce_candidate(raw: Any) -> CandidateDraft | None:
    """
    Build a CandidateDraft from one raw candidate object.

    Returns None when the object is not a dict or has no usable name.
    """
    if not isinstance(raw, dict):
        return None

    name = _as_text(raw.get("candidate_name"))
    if not name:
        return None

    countries = raw.get("countries_raw") or []
    if isinstance(countries, str):
        countries = [countries]
    elif not isinstance(countries, list):
        countries = []

    phase = _as_text(raw.get("teaching_phase_specialisation")) or "Unknown"
    alignment = (_as_text(raw.get("teaching_phase_alignment")) or "unknown").lower()

    return CandidateDraft(
        candidate_name=name,
        email_address=_as_text(raw.get("email_address")),
        contact_number=_as_text(raw.get("contact_number")),
        educational_qualifications_raw=_as_text(raw.get("educational_qualifications_raw")),
        degree_institution_raw=_as_text(raw.get("degree_institution_raw")),
        degree_country_raw=_as_text(raw.get("degree_country_raw")),
        has_education_degree=_as_bool(raw.get("has_education_degree")),
        qualification_type=QualificationType.parse(raw.get("qualification_type")),
        years_teaching_experience=_as_float(raw.get("years_teaching_experience")),
        teaching_phase_specialisation=phase if phase in TEACHING_PHASES else "Unknown",
        teaching_phase_alignment=alignment if alignment in PHASE_ALIGNMENTS else "unknown",
        has_tefl=_as_bool(raw.get("has_tefl")),
        has_tesol=_as_bool(raw.get("has_tesol")),
        has_celta=_as_bool(raw.get("has_celta")),
        countries_raw=[str(c).strip() for c in countries if c and str(c).strip()],
        current_location_raw=_as_text(raw.get("current_location_raw")),
        raw_ai_score=_as_score(raw.get("raw_ai_score")),
        ai_notes=_as_text(raw.get("ai_notes")),
    )


def parse_extraction_response(raw_result: str) -> list[CandidateDraft]:
    """
    Parse the model reply into zero or one drafts.

    A reply without a "candidates" list is treated as "not a CV". More than one
    candidate is truncated to the first.

    Raises:
        ExtractionError: If the reply is not valid JSON
    """
    try:
        parsed = json.loads(_strip_code_fences(raw_result))
    except json.JSONDecodeError as e:
        logger.error(
            "Failed to parse extraction response as JSON",
            error=str(e),
            raw_result=raw_result[:200],
        )
        raise ExtractionError("Extraction returned invalid JSON") from e

    if not isinstance(parsed, dict):
        return []
    candidates = parsed.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []

    if len(candidates) > 1:
        logger.warning("Extraction returned more than one candidate", count=len(candidates))

    draft = coerce_candidate(candidates[0])
    if draft is None:
        logger.warning("Discarding malformed candidate from extraction")
        return []
    return [draft]


class ExtractionService:
    """
    Document-to-candidate extraction backed by OpenAI chat completions.
    """

    def __init__(self, client: AsyncOpenAI | None = None):
        if client is not None:
            self.client = client
        else:
            if not settings.OPENAI_API_KEY:
                raise ExtractionError("OPENAI_API_KEY not configured in settings")
            self.client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
            )
        logger.info(
            "Extraction service initialized",
            model=settings.OPENAI_MODEL,
            timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
        )

    def _build_user_content(self, document: bytes, mime_type: str, filename: str) -> list[dict]:
        encoded = base64.b64encode(document).decode("ascii")
        return [
            {
                "type": "file",
                "file": {
                    "filename": filename,
                    "file_data": f"data:{mime_type};base64,{encoded}",
                },
            },
            {
                "type": "text",
                "text": (
                    f'Parse this document (filename: "{filename}"). Return ONLY the JSON '
                    'object as specified. If this is not a CV/resume, return {"candidates": []}.'
                ),
            },
        ]

    async def extract_candidates(
        self, document: bytes, mime_type: str, filename: str
    ) -> list[CandidateDraft]:
        """
        Extract at most one candidate from a document.

        Raises:
            ExtractionError: On transport failure or an unparseable reply
        """
        logger.info(
            "Starting CV extraction",
            filename=filename,
            mime_type=mime_type,
            size=len(document),
            model=settings.OPENAI_MODEL,
        )
        user_content = self._build_user_content(document, mime_type, filename)
        raw_result = await self._call_openai_with_retry(user_content)
        drafts = parse_extraction_response(raw_result)

        logger.info("CV extraction completed", filename=filename, candidate_count=len(drafts))
        return drafts

    async def _call_openai_with_retry(self, user_content: list[dict]) -> str:
        """Call OpenAI API with retry logic for transient failures."""
        last_error = None
        max_retries = settings.EXTRACTION_MAX_RETRIES

        for attempt in range(max_retries):
            try:
                response = await self.client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": user_content},
                    ],
                    max_tokens=settings.OPENAI_MAX_TOKENS,
                    temperature=settings.OPENAI_TEMPERATURE,
                    response_format={"type": "json_object"},
                )

                if not response.choices or not response.choices[0].message.content:
                    raise ExtractionError("Empty response from OpenAI API")

                result = response.choices[0].message.content.strip()
                logger.debug(
                    "OpenAI API call successful",
                    attempt=attempt + 1,
                    response_length=len(result),
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )
                return result

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)
                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    attempt=attempt + 1,
                    wait_time=wait_time,
                    error=str(e),
                )
                if attempt < max_retries - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning(
                    "OpenAI API timeout, retrying",
                    attempt=attempt + 1,
                    timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
                    error=str(e),
                )

            except openai.APIStatusError as e:
                last_error = e
                # No retry on client errors
                if 400 <= e.status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))
                if attempt < max_retries - 1:
                    await asyncio.sleep(min(2**attempt, 30))

            except openai.APIError as e:
                last_error = e
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

        logger.error(
            "OpenAI API call failed after all retries",
            max_retries=max_retries,
            final_error=str(last_error),
        )
        raise ExtractionError(
            f"OpenAI API failed after {max_retries} attempts",
            api_error=str(last_error),
        ) from last_error
