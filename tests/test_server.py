"""Tests for roundtable/server.py over FastAPI's TestClient."""

import httpx
import pytest
from fastapi.testclient import TestClient

from roundtable.events import DebateCompleted, DebateStarted, ModelCompleted, ModelStarted
from roundtable.protocol import SseDecoder
from roundtable.server import create_app

PARTICIPANTS = [
    {"model": "claude", "role": "strategic-architect"},
    {"model": "openai", "role": "implementation-specialist"},
]


@pytest.fixture
def app(controller):
    return create_app(controller)


@pytest.fixture
def client(app):
    return TestClient(app)


def _run_debate(client, **body) -> tuple[httpx.Response, list]:
    payload = {"question": "REST or GraphQL?", "participants": PARTICIPANTS, "maxRounds": 1, **body}
    resp = client.post("/api/debates", json=payload)
    frames = SseDecoder().feed(resp.content) if resp.status_code == 200 else []
    return resp, frames


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "sessions": 0, "models": ["claude", "openai"]}


def test_debate_streams_sse(client):
    resp, frames = _run_debate(client)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert [f.id for f in frames] == list(range(1, len(frames) + 1))
    assert isinstance(frames[0].event, DebateStarted)
    assert isinstance(frames[-1].event, DebateCompleted)
    assert [f.event.turn_number for f in frames if isinstance(f.event, ModelStarted)] == [0, 1]
    assert frames[0].event.session_id == resp.headers["x-session-id"]


def test_finished_debate_is_listed(client):
    resp, frames = _run_debate(client)
    session_id = resp.headers["x-session-id"]

    detail = client.get(f"/api/debates/{session_id}").json()
    assert detail["status"] == "complete"
    assert detail["roundCount"] == 1
    assert [m["turnNumber"] for m in detail["messages"]] == [0, 1]
    assert detail["consensus"]["summary"] == "Response from A"
    assert [s["id"] for s in client.get("/api/debates").json()] == [session_id]


def test_debate_from_template(client, controller):
    resp, frames = _run_debate(client, participants=None, templateId="template_code_review")
    assert resp.status_code == 200
    session = controller.get_session(resp.headers["x-session-id"])
    assert session.template_id == "template_code_review"


def test_debate_rejects_single_participant(client):
    resp, _ = _run_debate(client, participants=PARTICIPANTS[:1])
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_CONFIGURATION"


def test_debate_rejects_missing_question(client):
    resp = client.post("/api/debates", json={"participants": PARTICIPANTS})
    assert resp.status_code == 400


def test_debate_needs_participants_or_template(client):
    resp = client.post("/api/debates", json={"question": "Q?"})
    assert resp.status_code == 400


def test_debate_rejects_malformed_participants(client):
    resp = client.post("/api/debates", json={"question": "Q?", "participants": [{"role": "x"}, {"role": "y"}]})
    assert resp.status_code == 400
    assert "Malformed" in resp.json()["detail"]


def test_debate_rejects_non_mapping_overrides(client):
    resp, _ = _run_debate(client, instructionOverrides="be brief")
    assert resp.status_code == 400
    assert "Malformed" in resp.json()["detail"]


def test_debate_unknown_template(client):
    resp, _ = _run_debate(client, participants=None, templateId="template_nope")
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_unknown_session_is_404(client):
    assert client.get("/api/debates/debate_missing").status_code == 404
    assert client.post("/api/debates/debate_missing/cancel").status_code == 404


def test_cancel_registered_session(client, controller, participants):
    stream = controller.start("Q?", participants)
    resp = client.post(f"/api/debates/{stream.session_id}/cancel")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "sessionId": stream.session_id}


def test_cancel_finished_session_conflicts(client):
    resp, _ = _run_debate(client)
    resp = client.post(f"/api/debates/{resp.headers['x-session-id']}/cancel")
    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_STATE"


def test_interject_outside_debate_conflicts(client, controller, participants):
    stream = controller.start("Q?", participants)
    resp = client.post(f"/api/debates/{stream.session_id}/interjections", json={"content": "hello"})
    assert resp.status_code == 409


def test_interjection_requires_content(client, controller, participants):
    stream = controller.start("Q?", participants)
    resp = client.post(f"/api/debates/{stream.session_id}/interjections", json={"type": "steer"})
    assert resp.status_code == 400


async def test_interject_during_debate(app, controller, participants):
    stream = controller.start("Q?", participants, max_rounds=2)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        async for event in stream:
            if isinstance(event, ModelCompleted) and event.message.turn_number == 0:
                resp = await http.post(
                    f"/api/debates/{stream.session_id}/interjections",
                    json={"content": "focus on cost", "type": "steer", "targetMessageId": event.message.id},
                )
                assert resp.status_code == 201
                body = resp.json()
                assert body["type"] == "steer"
                assert body["afterTurn"] == 0
                assert body["targetMessageId"] == event.message.id

                pending = await http.get(f"/api/debates/{stream.session_id}/interjections")
                assert [i["content"] for i in pending.json()] == ["focus on cost"]


def test_delete_debate(client, controller, participants):
    active = controller.start("Q?", participants)
    assert client.delete(f"/api/debates/{active.session_id}").status_code == 409

    resp, _ = _run_debate(client)
    session_id = resp.headers["x-session-id"]
    assert client.delete(f"/api/debates/{session_id}").json() == {"ok": True}
    assert client.get(f"/api/debates/{session_id}").status_code == 404


def test_positions(client, controller):
    resp, _ = _run_debate(client)
    session_id = resp.headers["x-session-id"]
    body = client.get(f"/api/debates/{session_id}/positions", params={"a": "claude", "b": "openai"}).json()
    assert body["participantA"] == "claude"
    assert set(body) == {"participantA", "participantB", "agreements", "uniqueA", "uniqueB"}
    assert client.get(f"/api/debates/{session_id}/positions", params={"a": "claude", "b": "x"}).status_code == 400


# --- templates ---

def test_list_templates(client):
    templates = client.get("/api/templates").json()
    assert len(templates) == 6
    assert all(t["builtIn"] for t in templates)


def test_search_templates(client):
    assert [t["id"] for t in client.get("/api/templates", params={"q": "brainstorm"}).json()] == [
        "template_brainstorming"
    ]


def test_popular_templates(client):
    _run_debate(client, participants=None, templateId="template_code_review")
    templates = client.get("/api/templates", params={"sort": "popular"}).json()
    assert templates[0]["id"] == "template_code_review"
    assert templates[0]["useCount"] == 1


def test_template_crud(client):
    resp = client.post(
        "/api/templates",
        json={"name": "Schema Review", "style": "adversarial", "maxRounds": 2, "participants": PARTICIPANTS},
    )
    assert resp.status_code == 201
    template_id = resp.json()["id"]
    assert template_id.startswith("template_custom_")

    resp = client.put(f"/api/templates/{template_id}", json={"maxRounds": 4, "description": "DB schemas"})
    assert resp.status_code == 200
    assert resp.json()["maxRounds"] == 4

    assert client.get(f"/api/templates/{template_id}").json()["description"] == "DB schemas"
    assert client.delete(f"/api/templates/{template_id}").json() == {"ok": True}
    assert client.get(f"/api/templates/{template_id}").status_code == 404


def test_create_template_validation(client):
    resp = client.post(
        "/api/templates", json={"name": "Solo", "maxRounds": 2, "participants": PARTICIPANTS[:1]}
    )
    assert resp.status_code == 400
    resp = client.post("/api/templates", json={"name": "Bad", "style": "shouting", "participants": PARTICIPANTS})
    assert resp.status_code == 400


def test_built_in_templates_are_read_only(client):
    assert client.put("/api/templates/template_code_review", json={"maxRounds": 5}).status_code == 409
    assert client.delete("/api/templates/template_code_review").status_code == 409


def test_update_template_unknown_field(client):
    resp = client.post(
        "/api/templates", json={"name": "Schema Review", "maxRounds": 2, "participants": PARTICIPANTS}
    )
    resp = client.put(f"/api/templates/{resp.json()['id']}", json={"useCount": 99})
    assert resp.status_code == 400


def test_server_logs_under_module_name(client, caplog):
    with caplog.at_level("INFO", logger="roundtable.server"):
        _run_debate(client)
    assert any("Streaming session" in r.getMessage() for r in caplog.records if r.name == "roundtable.server")
