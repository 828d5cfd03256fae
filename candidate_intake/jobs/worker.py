"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching job with the remaining arguments:

    python -m candidate_intake.jobs.worker process_candidates [YYYY-MM-DD]
    python -m candidate_intake.jobs.worker backfill 2025-01-01 2025-01-07
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from candidate_intake.config import settings
from candidate_intake.db.pool import db_pool
from candidate_intake.features.candidate_pipeline.jobs import run_backfill, run_process_candidates
from candidate_intake.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[list[str]], Awaitable[Any]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "process_candidates": run_process_candidates,
    "backfill": run_backfill,
}


def _resolve_job_name(argv: list[str]) -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if argv:
        return argv[0].strip().lower()
    return os.getenv("WORKER_JOB", "process_candidates").strip().lower()


async def run_worker(job_name: str, args: list[str] | None = None) -> Any:
    """Run the requested job with the database pool open for its duration."""
    name = job_name.strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name, args=args or [])
    await db_pool.initialize()
    try:
        return await JOB_REGISTRY[name](args or [])
    finally:
        await db_pool.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint."""
    argv = sys.argv[1:] if argv is None else argv
    setup_logging(settings.LOG_LEVEL)
    job_name = _resolve_job_name(argv)
    asyncio.run(run_worker(job_name, argv[1:]))


if __name__ == "__main__":
    main()
