"""
Processing trigger response models.
Used by routes for output formatting.
"""

from pydantic import BaseModel, Field

from candidate_intake.features.candidate_pipeline.domain import RunResult, RunStatus


class RunStatsResponse(BaseModel):
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


class ProcessCandidatesResponse(BaseModel):
    """Outcome of a finished run (including runs that finished as failed)."""

    success: bool = Field(..., description="False only when the run status is failed")
    run_id: str | None = Field(None, description="processing_runs id")
    target_day: str = Field(..., description="Processed day (YYYY-MM-DD)")
    status: str = Field(..., description="Final run status")
    duration_ms: int = Field(..., description="Total runtime in milliseconds")
    stats: RunStatsResponse
    error: str | None = Field(None, description="Run-level error message, if any")

    @classmethod
    def from_result(cls, result: RunResult) -> "ProcessCandidatesResponse":
        return cls(
            success=result.status is not RunStatus.FAILED,
            run_id=result.run_id,
            target_day=result.target_day,
            status=result.status.value,
            duration_ms=result.duration_ms,
            stats=RunStatsResponse(**result.stats.to_dict()),
            error=result.error,
        )


class ProcessCandidatesErrorResponse(BaseModel):
    """Infrastructure failure before a run could start."""

    success: bool = False
    error: str
    duration_ms: int
