"""Tests for the FastAPI trigger endpoint."""

from __future__ import annotations

from fastapi.testclient import TestClient

from batch_mutator.api import create_app
from batch_mutator.trigger import BackgroundWorker, TriggerReceipt


class _RecordingTrigger:
    job_key = "update:records:marker_is_null"

    def __init__(self) -> None:
        self.fired = 0

    def fire(self) -> TriggerReceipt:
        self.fired += 1
        return TriggerReceipt(job_key=self.job_key, scheduled=self.fired == 1)


def _client(trigger: _RecordingTrigger) -> TestClient:
    return TestClient(create_app(trigger=trigger, worker=BackgroundWorker()))


def test_post_update_is_accepted_with_empty_body() -> None:
    trigger = _RecordingTrigger()
    with _client(trigger) as client:
        response = client.post("/records/updates")

    assert response.status_code == 202
    assert response.content == b""
    assert trigger.fired == 1


def test_get_update_is_accepted_for_legacy_callers() -> None:
    trigger = _RecordingTrigger()
    with _client(trigger) as client:
        response = client.get("/records/updates")

    assert response.status_code == 202
    assert trigger.fired == 1


def test_coalesced_request_is_still_accepted() -> None:
    trigger = _RecordingTrigger()
    with _client(trigger) as client:
        first = client.post("/records/updates")
        second = client.post("/records/updates")

    assert first.status_code == 202
    assert second.status_code == 202
    assert trigger.fired == 2


def test_health_reports_in_flight_jobs() -> None:
    with _client(_RecordingTrigger()) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "in_flight": []}
