"""Tests for server.py (dispatcher replaced, no worker processes spawned)"""

import pytest
from fastapi.testclient import TestClient

from memory_estimator import server
from memory_estimator.core.errors import ScratchCollisionError
from memory_estimator.models.types import (
    MIB,
    JobResult,
    JobStatus,
    MemoryEstimate,
    WorkloadClass,
)


@pytest.fixture
def calls():
    return []


@pytest.fixture
def client(monkeypatch, calls):
    server.jobs.clear()
    server.job_events.clear()

    def fake_dispatch(descriptor, settings, isolation, emitter):
        calls.append(descriptor)
        emitter.log("dispatcher", "fake run", task_id=descriptor.task_id)
        if descriptor.binary_name == "busy.wasm":
            raise ScratchCollisionError("already running")
        return JobResult(
            task_id=descriptor.task_id,
            status=JobStatus.FAILED if descriptor.function_name == "crash" else JobStatus.SUCCEEDED,
            estimate=MemoryEstimate(
                minimum_bytes=MIB, peak_bytes=3 * MIB, buffer_bytes=2 * MIB,
                basis_class=WorkloadClass.SIMPLE_COMPUTATION,
            ),
            fallback_used=descriptor.function_name == "crash",
            error="trap" if descriptor.function_name == "crash" else None,
        )

    monkeypatch.setattr(server, "dispatch_task", fake_dispatch)
    return TestClient(server.app)


BODY = {"task_id": 11, "binary_name": "m.wasm", "function_name": "run", "payload": "x"}


class TestSubmitTask:

    def test_acknowledges_with_result(self, client, calls):
        resp = client.post("/submit_task", json=BODY)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Task done"
        assert data["task_id"] == 11
        assert data["status"] == "SUCCEEDED"
        assert data["estimate"]["peak_bytes"] == 3 * MIB
        descriptor = calls[0]
        assert descriptor.payload == "x"
        assert descriptor.compiled_module_file == "m.cwasm"

    def test_failed_job_is_still_acknowledged(self, client):
        resp = client.post("/submit_task", json={**BODY, "function_name": "crash"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Task done"
        assert data["status"] == "FAILED"
        assert data["fallback_used"] is True
        assert data["error"] == "trap"

    def test_negative_task_id(self, client, calls):
        resp = client.post("/submit_task", json={**BODY, "task_id": -1})
        assert resp.status_code == 400
        assert calls == []

    def test_missing_field(self, client):
        resp = client.post("/submit_task", json={"task_id": 1})
        assert resp.status_code == 422

    def test_collision(self, client):
        resp = client.post("/submit_task", json={**BODY, "binary_name": "busy.wasm"})
        assert resp.status_code == 409

    @pytest.mark.parametrize("overrides", [
        {"model_folder_name": "../../etc"},
        {"binary_name": "../secrets.wasm"},
        {"binary_name": "nested/m.wasm"},
    ])
    def test_path_names_rejected(self, client, calls, overrides):
        resp = client.post("/submit_task", json={**BODY, **overrides})
        assert resp.status_code == 400
        assert calls == []


class TestOtherEndpoints:

    def test_plot_stub(self, client):
        resp = client.get("/plot_memory")
        assert resp.status_code == 200
        assert resp.json() == "Plots ok"

    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "ok"
        assert data["feature_source"] in ("module", "disassembly")

    def test_results_and_events(self, client):
        assert client.get("/api/results/11").status_code == 404
        client.post("/submit_task", json=BODY)

        result = client.get("/api/results/11").json()
        assert result["status"] == "SUCCEEDED"

        events = client.get("/api/events/11").json()["events"]
        assert events[0]["message"] == "fake run"
        assert events[0]["event_type"] == "JOB_LOG"
