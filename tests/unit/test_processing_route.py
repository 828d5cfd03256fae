"""
Tests for the POST /process-candidates trigger.
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from candidate_intake.features.candidate_pipeline.domain import (
    RunResult,
    RunStats,
    RunStatus,
    TriggerSource,
)
from candidate_intake.features.candidate_pipeline.services.coordinator import RunStartError
from candidate_intake.main import app
from candidate_intake.routes.processing import get_coordinator


@pytest.fixture
def coordinator_mock():
    return AsyncMock()


@pytest.fixture
def client(apply_auth_override, coordinator_mock):
    apply_auth_override(app)
    app.dependency_overrides[get_coordinator] = lambda: coordinator_mock
    yield TestClient(app)
    app.dependency_overrides.clear()


def _result(status: RunStatus, error: str | None = None) -> RunResult:
    stats = RunStats(routes_processed=1, emails_fetched=3, candidates_inserted=2, ai_calls_made=3)
    return RunResult(
        run_id="run-1",
        target_day="2025-01-14",
        status=status,
        duration_ms=1234,
        stats=stats,
        error=error,
    )


def test_completed_run_returns_stats(client, coordinator_mock):
    coordinator_mock.run.return_value = _result(RunStatus.COMPLETED)

    response = client.post(
        "/process-candidates", json={"target_day": "2025-01-14", "triggered_by": "cron"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["run_id"] == "run-1"
    assert data["status"] == "completed"
    assert data["stats"]["candidates_inserted"] == 2
    coordinator_mock.run.assert_awaited_once_with(date(2025, 1, 14), TriggerSource.CRON)


def test_empty_body_uses_defaults(client, coordinator_mock):
    coordinator_mock.run.return_value = _result(RunStatus.COMPLETED_WITH_ERRORS)

    response = client.post("/process-candidates")

    assert response.status_code == 200
    assert response.json()["success"] is True
    coordinator_mock.run.assert_awaited_once_with(None, TriggerSource.MANUAL)


def test_failed_run_reports_unsuccessful(client, coordinator_mock):
    coordinator_mock.run.return_value = _result(RunStatus.FAILED, error="routes unavailable")

    response = client.post("/process-candidates", json={})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["status"] == "failed"
    assert data["error"] == "routes unavailable"


def test_run_start_failure_is_500(client, coordinator_mock):
    coordinator_mock.run.side_effect = RunStartError("Failed to create processing run: timeout")

    response = client.post("/process-candidates", json={})

    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert "Failed to create processing run" in data["error"]
    assert isinstance(data["duration_ms"], int)


def test_invalid_target_day_rejected(client, coordinator_mock):
    response = client.post("/process-candidates", json={"target_day": "yesterday"})

    assert response.status_code == 422
    coordinator_mock.run.assert_not_awaited()


def test_missing_credentials_rejected(coordinator_mock):
    app.dependency_overrides[get_coordinator] = lambda: coordinator_mock
    try:
        response = TestClient(app).post("/process-candidates", json={})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code in (401, 403)
    coordinator_mock.run.assert_not_awaited()
