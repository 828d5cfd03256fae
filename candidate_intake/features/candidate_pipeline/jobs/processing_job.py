"""
Candidate processing job runners.

`process_candidates` runs the pipeline once for a single day (default:
yesterday in the reference timezone). `backfill` runs it for every day in an
inclusive range, one processing run per day; already-claimed messages are
skipped, so re-running a range is safe.
"""

from datetime import date, timedelta

from candidate_intake.features.candidate_pipeline.domain import RunResult, RunStatus, TriggerSource
from candidate_intake.features.candidate_pipeline.services.coordinator import RunCoordinator
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_BACKFILL_DAYS = 92


def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValueError(f"Invalid day '{value}', expected YYYY-MM-DD") from e


def backfill_days(start: date, end: date) -> list[date]:
    if end < start:
        raise ValueError(f"Backfill end {end} is before start {start}")
    span = (end - start).days + 1
    if span > MAX_BACKFILL_DAYS:
        raise ValueError(f"Backfill range of {span} days exceeds {MAX_BACKFILL_DAYS}")
    return [start + timedelta(days=offset) for offset in range(span)]


async def run_process_candidates(
    args: list[str], coordinator: RunCoordinator | None = None
) -> RunResult:
    target_day = parse_day(args[0]) if args else None
    coordinator = coordinator or RunCoordinator()
    return await coordinator.run(target_day, TriggerSource.CRON)


async def run_backfill(
    args: list[str], coordinator: RunCoordinator | None = None
) -> list[RunResult]:
    if len(args) != 2:
        raise ValueError("backfill requires START and END days (YYYY-MM-DD)")

    days = backfill_days(parse_day(args[0]), parse_day(args[1]))
    coordinator = coordinator or RunCoordinator()

    logger.info(
        "Backfill started",
        start=days[0].isoformat(),
        end=days[-1].isoformat(),
        day_count=len(days),
    )

    results: list[RunResult] = []
    for day in days:
        results.append(await coordinator.run(day, TriggerSource.BACKFILL))

    logger.info(
        "Backfill finished",
        day_count=len(results),
        failed_days=[r.target_day for r in results if r.status is RunStatus.FAILED],
    )
    return results
