"""Tests for the HTTP and WebSocket service."""

import sys
import os
import pytest
from fastapi.testclient import TestClient
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from app import create_app
from stepflow.config.frontmatter import parse_front_matter
from stepflow.executors import ContentGenerator, SUMMARY_DOCUMENT
from stepflow.settings import Settings


class FakeGenerator(ContentGenerator):
    async def generate(self, prompt, system=None, model=None):
        return "generated text"


@pytest.fixture
def client(tmp_path):
    settings = Settings(project_path=tmp_path, browser=False)
    with TestClient(create_app(settings, generator=FakeGenerator())) as test_client:
        yield test_client


WRITER = {"id": "a1", "kind": "agent", "label": "Writer", "description": "Writes"}
PDF = {"id": "s1", "kind": "skill", "label": "PDF", "skillId": "pdf"}


def read_front_matter(path):
    return parse_front_matter(path.read_text(encoding="utf-8"))[0]


def test_root_and_health(client, tmp_path):
    assert client.get("/").json()["status"] == "running"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["running"] is False

    assert client.get("/api/project-path").json() == {"projectPath": str(tmp_path)}


def test_sync_node(client, tmp_path):
    response = client.post("/api/sync/node", json={"node": WRITER})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["path"] == str(tmp_path / ".claude" / "agents" / "writer.md")


def test_invalid_node_is_rejected(client):
    response = client.post("/api/sync/node", json={"node": {"id": "x", "kind": "robot", "label": "X"}})
    assert response.status_code == 422


def test_edge_sync_and_delete(client, tmp_path):
    nodes = [WRITER, PDF]
    edge = {"id": "e1", "source": "a1", "target": "s1"}

    assert client.post("/api/sync/edge", json={"edge": edge, "nodes": nodes}).json()["success"]

    skill_path = tmp_path / ".claude" / "skills" / "pdf" / "SKILL.md"
    agent_path = tmp_path / ".claude" / "agents" / "writer.md"
    assert read_front_matter(skill_path)["upstream"] == "writer"
    assert read_front_matter(agent_path)["skills"] == "pdf"

    current = [dict(WRITER, skills=["pdf"]), dict(PDF, upstream=["writer"])]
    response = client.post("/api/sync/node/delete", json={"node": current[0], "nodes": current})

    assert response.json()["success"]
    assert not agent_path.exists()
    assert "upstream" not in read_front_matter(skill_path)


def test_forbidden_edges_are_not_synced(client, tmp_path):
    topic = {"id": "i1", "kind": "input", "label": "Topic"}
    output = {"id": "o1", "kind": "output", "label": "Output"}
    nodes = [WRITER, PDF, topic, output]

    for source, target in (("s1", "s1"), ("a1", "i1"), ("o1", "s1")):
        edge = {"id": "e1", "source": source, "target": target}
        body = client.post("/api/sync/edge", json={"edge": edge, "nodes": nodes}).json()
        assert body["success"] is False, (source, target)
        assert body["error"]
        assert body["updated"] == []

    assert not (tmp_path / ".claude" / "skills" / "pdf" / "SKILL.md").exists()
    assert not (tmp_path / ".claude" / "agents" / "writer.md").exists()


def test_edge_removal(client, tmp_path):
    edge = {"id": "e1", "source": "a1", "target": "s1"}
    client.post("/api/sync/edge", json={"edge": edge, "nodes": [WRITER, PDF]})

    current = [dict(WRITER, skills=["pdf"]), dict(PDF, upstream=["writer"])]
    response = client.post("/api/sync/edge/remove", json={"edge": edge, "nodes": current})

    assert response.json()["success"]
    assert "skills" not in read_front_matter(tmp_path / ".claude" / "agents" / "writer.md")


def test_load_and_merge(client):
    client.post("/api/sync/node", json={"node": PDF})

    loaded = client.get("/api/load/config").json()["nodes"]
    assert [node["id"] for node in loaded] == ["skill-pdf"]
    assert loaded[0]["skillId"] == "pdf"
    assert loaded[0]["kind"] == "skill"

    live = [
        {"id": "i1", "kind": "input", "label": "Input"},
        {"id": "agent-gone", "kind": "agent", "label": "Gone"},
    ]
    merged = client.post("/api/load/merge", json={"nodes": live}).json()["nodes"]
    assert [node["id"] for node in merged] == ["i1", "skill-pdf"]


def test_layout(client):
    payload = {
        "nodes": [
            {"id": "a", "kind": "agent", "label": "A"},
            {"id": "b", "kind": "agent", "label": "B"},
        ],
        "edges": [{"id": "e", "source": "a", "target": "b"}],
    }

    positions = client.post("/api/layout", json=payload).json()["positions"]

    assert positions == {"a": {"x": 100, "y": 175}, "b": {"x": 380, "y": 175}}


def receive_until_run_event(websocket):
    events = []
    while True:
        event = websocket.receive_json()
        events.append(event)
        if event["type"] in ("run", "error"):
            return events


def test_execution_over_websocket(client, tmp_path):
    message = {
        "type": "execute",
        "runId": "r1",
        "nodes": [
            {"id": "i1", "kind": "input", "label": "Topic", "value": "dragons"},
            WRITER,
            {"id": "o1", "kind": "output", "label": "Output"},
        ],
        "edges": [
            {"id": "e1", "source": "i1", "target": "a1"},
            {"id": "e2", "source": "a1", "target": "o1"},
        ],
    }

    with client.websocket_connect("/ws/execution") as websocket:
        websocket.send_json(message)
        events = receive_until_run_event(websocket)

    assert events[-1]["status"] == "completed"
    assert events[-1]["runId"] == "r1"
    node_events = [e for e in events if e["type"] == "node"]
    assert [e["nodeId"] for e in node_events if e["status"] == "completed"] == ["i1", "a1", "o1"]
    completed_agent = next(e for e in node_events if e["nodeId"] == "a1" and e["status"] == "completed")
    assert completed_agent["result"] == "generated text"
    assert (tmp_path / "output" / "r1" / SUMMARY_DOCUMENT).exists()


def test_failed_run_over_websocket(client):
    message = {
        "type": "execute",
        "runId": "r2",
        "nodes": [{"id": "x1", "kind": "agent", "label": "Broken"}],
        "edges": [],
    }
    client.app.state.engine.registry.register("agent", lambda context: context.failure("no model"))

    with client.websocket_connect("/ws/execution") as websocket:
        websocket.send_json(message)
        events = receive_until_run_event(websocket)

    assert events[-2] == {
        "type": "node",
        "runId": "r2",
        "nodeId": "x1",
        "status": "error",
        "error": "no model",
        "timestamp": events[-2]["timestamp"],
    }
    assert events[-1]["status"] == "error"
    assert events[-1]["error"] == "no model"


def test_cancel_unknown_run_is_still_answered(client):
    with client.websocket_connect("/ws/execution") as websocket:
        websocket.send_json({"type": "cancel", "runId": "nope"})
        event = websocket.receive_json()

    assert event["type"] == "run"
    assert event["runId"] == "nope"
    assert event["status"] == "cancelled"


def test_bad_messages(client):
    with client.websocket_connect("/ws/execution") as websocket:
        websocket.send_json({"type": "execute", "nodes": []})
        missing_run_id = websocket.receive_json()

        websocket.send_json({"type": "dance"})
        unknown = websocket.receive_json()

    assert missing_run_id["type"] == "run"
    assert missing_run_id["status"] == "error"
    assert unknown == {"type": "error", "error": "Unknown message type: dance"}


def test_run_id_must_be_a_plain_name(client, tmp_path):
    outside = tmp_path / "elsewhere"
    message = {
        "type": "execute",
        "runId": str(outside),
        "nodes": [{"id": "o1", "kind": "output", "label": "Output"}],
        "edges": [],
    }

    with client.websocket_connect("/ws/execution") as websocket:
        websocket.send_json(message)
        event = websocket.receive_json()
        websocket.send_json(dict(message, runId="../up"))
        parent = websocket.receive_json()

    assert event["type"] == "run"
    assert event["status"] == "error"
    assert event["runId"] == str(outside)
    assert parent["status"] == "error"
    assert not outside.exists()
    assert not (tmp_path / "up").exists()
