import importlib
import sys
import time

import pytest
from fastapi.testclient import TestClient

import crewdeck
from crewdeck.config import DEFAULT_STEPS
from crewdeck.exceptions import ConfigError


def read_until_terminal(websocket, execution_id, limit=100):
    """Messages for one execution up to and including its terminal event."""
    messages = []
    for _ in range(limit):
        message = websocket.receive_json()
        if message.get("executionId") != execution_id:
            continue
        messages.append(message)
        if message["type"] in ("execution_completed", "execution_stopped"):
            return messages
    raise AssertionError(f"no terminal event for {execution_id} in {limit} messages")


def test_root_and_health(app):
    with TestClient(app) as client:
        root = client.get("/")
        health = client.get("/health")

    assert root.status_code == 200
    assert root.json()["status"] == "running"
    assert health.json() == {"status": "healthy", "active_executions": [], "subscribers": 0}


def test_create_execution_returns_running_record(app_factory):
    app = app_factory(interval=5.0)
    with TestClient(app) as client:
        response = client.post("/api/executions", json={
            "crewId": "crew-42",
            "description": "Develop a market entry strategy",
            "config": {"model": "llama-3.3-70b", "processType": "hierarchical", "maxIterations": 5},
        })
        body = response.json()
        health = client.get("/health").json()

    assert response.status_code == 201
    assert body["status"] == "running"
    assert body["crewId"] == "crew-42"
    assert body["config"]["processType"] == "hierarchical"
    assert body["completedAt"] is None
    assert body["startedAt"]
    assert health["active_executions"] == [body["id"]]


def test_create_execution_with_empty_body_is_accepted(app_factory):
    with TestClient(app_factory(interval=5.0)) as client:
        response = client.post("/api/executions", json={})

    assert response.status_code == 201


def test_create_execution_rejects_malformed_body(app):
    with TestClient(app) as client:
        bad_config = client.post("/api/executions", json={"config": {"maxIterations": 0}})
        not_json = client.post("/api/executions", content="start please",
                               headers={"Content-Type": "application/json"})
        listed = client.get("/api/executions").json()

    assert bad_config.status_code == 400
    assert bad_config.json() == {"detail": "Invalid execution data"}
    assert not_json.status_code == 400
    assert listed == []


def test_unknown_execution_is_404(app):
    with TestClient(app) as client:
        get = client.get("/api/executions/does-not-exist")
        stop = client.put("/api/executions/does-not-exist/stop")

    assert get.status_code == 404
    assert stop.status_code == 404
    assert stop.json() == {"detail": "Execution not found"}


def test_stop_marks_execution_failed_and_is_idempotent(app_factory):
    with TestClient(app_factory(interval=5.0)) as client:
        execution_id = client.post("/api/executions", json={}).json()["id"]

        first = client.put(f"/api/executions/{execution_id}/stop")
        second = client.put(f"/api/executions/{execution_id}/stop")
        fetched = client.get(f"/api/executions/{execution_id}")

    assert first.status_code == 200
    assert first.json()["status"] == "failed"
    assert second.json() == first.json()
    assert fetched.json()["status"] == "failed"


def test_websocket_ping_pong(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

            websocket.send_text("not json")
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}


def test_websocket_ignores_binary_frames(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_bytes(b"\x00\x01")
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}


def test_execution_runs_to_completion_end_to_end(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as websocket:
            created = client.post("/api/executions", json={"description": "Market entry strategy"})
            assert created.status_code == 201
            assert created.json()["status"] == "running"
            execution_id = created.json()["id"]

            messages = read_until_terminal(websocket, execution_id)

        final = client.get(f"/api/executions/{execution_id}").json()

    updates = [m for m in messages if m["type"] == "execution_update"]
    assert [m["step"] for m in updates] == DEFAULT_STEPS
    assert updates[-1]["progress"] == 100
    assert messages[-1] == {
        "type": "execution_completed",
        "executionId": execution_id,
        "message": "Execution completed successfully!",
    }
    assert set(updates[0]) == {"type", "executionId", "step", "timestamp", "progress", "metrics"}
    assert set(updates[0]["metrics"]) == {"tokensUsed", "apiCalls", "estimatedCost", "duration"}

    assert final["status"] == "completed"
    assert final["completedAt"] is not None
    assert final["duration"] == 128


def test_two_observers_see_identical_sequences(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
            execution_id = client.post("/api/executions", json={}).json()["id"]

            seen_first = read_until_terminal(first, execution_id)
            seen_second = read_until_terminal(second, execution_id)

    assert [m["step"] for m in seen_first if m["type"] == "execution_update"] == DEFAULT_STEPS
    assert [(m["type"], m.get("step"), m.get("progress")) for m in seen_first] == \
        [(m["type"], m.get("step"), m.get("progress")) for m in seen_second]


def test_stop_before_first_tick_end_to_end(app_factory):
    app = app_factory(interval=0.3)
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as websocket:
            execution_id = client.post("/api/executions", json={}).json()["id"]
            stopped = client.put(f"/api/executions/{execution_id}/stop")

            assert websocket.receive_json() == {
                "type": "execution_stopped",
                "executionId": execution_id,
                "message": "Execution stopped by user",
            }

            # anything the runner emitted after the stop would be queued ahead of the pong
            time.sleep(0.5)
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

        record = client.get(f"/api/executions/{execution_id}").json()

    assert stopped.json()["status"] == "failed"
    assert record["status"] == "failed"
    assert record["tokensUsed"] == 0


def test_importing_api_does_not_read_environment(monkeypatch):
    monkeypatch.setenv("CREWDECK_PORT", "not-a-port")
    monkeypatch.setattr(crewdeck, "api", sys.modules["crewdeck.api"])
    monkeypatch.delitem(sys.modules, "crewdeck.api")

    module = importlib.import_module("crewdeck.api")

    with pytest.raises(ConfigError):
        module.app
