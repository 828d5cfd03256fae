"""
Candidate processing trigger route.
HTTP entry point used by the daily scheduler and for manual re-runs.
"""

import time

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from candidate_intake.auth.verify import service_role_dependency
from candidate_intake.features.candidate_pipeline.services.coordinator import RunCoordinator
from candidate_intake.infrastructure.observability.logging import get_logger
from candidate_intake.models.api.processing_request import ProcessCandidatesRequest
from candidate_intake.models.api.processing_response import (
    ProcessCandidatesErrorResponse,
    ProcessCandidatesResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["processing"])


def get_coordinator() -> RunCoordinator:
    return RunCoordinator()


@router.post(
    "/process-candidates",
    response_model=ProcessCandidatesResponse,
    responses={500: {"model": ProcessCandidatesErrorResponse}},
)
async def process_candidates(
    request: ProcessCandidatesRequest | None = None,
    claims: dict = Depends(service_role_dependency),
    coordinator: RunCoordinator = Depends(get_coordinator),
):
    """Run the pipeline for one day and report the finalized run."""
    request = request or ProcessCandidatesRequest()
    started = time.time()

    try:
        result = await coordinator.run(request.target_day, request.triggered_by)
    except Exception as e:
        duration_ms = int((time.time() - started) * 1000)
        logger.error(
            "Processing trigger failed",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=duration_ms,
        )
        body = ProcessCandidatesErrorResponse(error=str(e), duration_ms=duration_ms)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(),
        )

    return ProcessCandidatesResponse.from_result(result)
