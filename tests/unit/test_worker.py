from unittest.mock import AsyncMock

import pytest

from candidate_intake.jobs import worker


@pytest.fixture
def pool(monkeypatch):
    initialize = AsyncMock()
    close = AsyncMock()
    monkeypatch.setattr(worker.db_pool, "initialize", initialize)
    monkeypatch.setattr(worker.db_pool, "close", close)
    return initialize, close


@pytest.mark.asyncio
async def test_run_worker_runs_job_with_args(monkeypatch, pool):
    received = {}

    async def dummy_job(args):
        received["args"] = args
        return "done"

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    result = await worker.run_worker("Dummy", ["2025-01-14"])

    assert result == "done"
    assert received["args"] == ["2025-01-14"]
    initialize, close = pool
    initialize.assert_awaited_once()
    close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_worker_closes_pool_when_job_fails(monkeypatch, pool):
    async def failing_job(args):
        raise RuntimeError("boom")

    monkeypatch.setitem(worker.JOB_REGISTRY, "failing", failing_job)

    with pytest.raises(RuntimeError):
        await worker.run_worker("failing")

    pool[1].assert_awaited_once()


@pytest.mark.asyncio
async def test_run_worker_unknown_job(pool):
    with pytest.raises(ValueError):
        await worker.run_worker("missing")

    pool[0].assert_not_awaited()


def test_resolve_job_name(monkeypatch):
    monkeypatch.delenv("WORKER_JOB", raising=False)
    assert worker._resolve_job_name([]) == "process_candidates"
    assert worker._resolve_job_name([" Backfill "]) == "backfill"

    monkeypatch.setenv("WORKER_JOB", "backfill")
    assert worker._resolve_job_name([]) == "backfill"
