"""
Processing trigger request models.
Used by routes for input validation.
"""

from datetime import date

from pydantic import BaseModel, Field

from candidate_intake.features.candidate_pipeline.domain import TriggerSource


class ProcessCandidatesRequest(BaseModel):
    """Request body for POST /process-candidates. Every field is optional."""

    target_day: date | None = Field(
        default=None, description="Day to process (YYYY-MM-DD); defaults to yesterday"
    )
    triggered_by: TriggerSource = Field(
        default=TriggerSource.MANUAL, description="cron, manual or backfill"
    )
