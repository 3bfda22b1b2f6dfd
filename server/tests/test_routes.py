from __future__ import annotations

from typing import Iterator

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from pagewright.ai_agents.base import AgentConfig
from pagewright.main import create_app
from pagewright.models import schemas
from pagewright.routers.realtime import CLOSE_BAD_REQUEST, parse_kinds
from pagewright.services.event_bus import EventBus, TopicKey, TopicKind
from pagewright.services.orchestration import OrchestrationService
from pagewright.services.session_store import SessionStore
from pagewright.services.turn_orchestrator import TurnOrchestrator

from support import ScriptedRunner


def _service(runner: ScriptedRunner) -> OrchestrationService:
    store = SessionStore()
    bus = EventBus()
    return OrchestrationService(store, bus, TurnOrchestrator(store, bus, AgentConfig(), runner=runner))


@pytest.fixture
def builder_runner() -> ScriptedRunner:
    return ScriptedRunner(
        [
            ("token", "Hel"),
            ("token", "lo"),
            ("tool", "add_node", {"tag": "h1", "text": "Hi", "attributes": {"class": "title"}}),
        ],
        final_text="Added a heading.",
    )


@pytest.fixture
def service(builder_runner: ScriptedRunner) -> OrchestrationService:
    return _service(builder_runner)


@pytest.fixture
def client(service: OrchestrationService) -> Iterator[TestClient]:
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    assert client.get("/").json() == {"service": "pagewright", "status": "ok"}


def test_ensure_session_generates_or_echoes_ids(client: TestClient) -> None:
    created = client.post("/sessions", json={})
    assert created.status_code == 200
    session_id = created.json()["session_id"]
    assert session_id

    again = client.post("/sessions", json={"session_id": session_id})
    assert again.json() == {"session_id": session_id}
    assert client.post("/sessions", json={"session_id": "mine"}).json() == {"session_id": "mine"}


def test_unknown_session_reads_as_empty(client: TestClient) -> None:
    assert client.get("/sessions/fresh/messages").json() == []
    assert client.get("/sessions/fresh/document").json() == {"session_id": "fresh", "body_html": ""}
    assert client.get("/sessions/fresh").json() == {
        "session_id": "fresh",
        "messages": [],
        "document": {"session_id": "fresh", "body_html": ""},
    }


def test_empty_message_is_rejected(client: TestClient) -> None:
    assert client.post("/sessions/s1/messages", json={"input": ""}).status_code == 422


def test_send_message_streams_the_turn_over_the_websocket(client: TestClient) -> None:
    with client.websocket_connect("/realtime/sessions/s1/events") as websocket:
        response = client.post("/sessions/s1/messages", json={"input": "add a heading"})
        assert response.status_code == 200
        body = response.json()
        assert (body["role"], body["content"]) == ("USER", "add a heading")

        events = [websocket.receive_json() for _ in range(7)]

    assert [event["kind"] for event in events] == [
        "message_delta",
        "message_delta",
        "tool_event",
        "tool_event",
        "document_updated",
        "tool_event",
        "model_message_completed",
    ]
    assert [event["content_delta"] for event in events[:2]] == ["Hel", "lo"]
    assert [event["type"] for event in events if event["kind"] == "tool_event"] == [
        "STARTED",
        "PROGRESS",
        "COMPLETED",
    ]
    assert events[4]["html"] == '<h1 class="title">Hi</h1>'
    assert events[4]["index"] == 0

    messages = client.get("/sessions/s1/messages").json()
    assert [m["role"] for m in messages] == ["USER", "MODEL"]
    assert messages[-1]["id"] == events[-1]["message_id"]
    assert messages[-1]["content"] == "Added a heading."
    assert client.get("/sessions/s1/document").json()["body_html"] == '<h1 class="title">Hi</h1>'


def test_websocket_kinds_filter(client: TestClient) -> None:
    with client.websocket_connect("/realtime/sessions/s1/events?kinds=document_updated,model_message_completed") as ws:
        client.post("/sessions/s1/messages", json={"input": "go"})
        first, second = ws.receive_json(), ws.receive_json()

    assert first["kind"] == "document_updated"
    assert second["kind"] == "model_message_completed"


def test_websocket_rejects_unknown_kind(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/realtime/sessions/s1/events?kinds=everything"):
            pass
    assert excinfo.value.code == CLOSE_BAD_REQUEST


def test_websocket_disconnect_releases_the_subscription(client: TestClient, service: OrchestrationService) -> None:
    with client.websocket_connect("/realtime/sessions/s1/events?kinds=turn_failed"):
        assert service.bus.subscriber_count(TopicKey.turn_failed("s1")) == 1

    assert service.bus.subscriber_count(TopicKey.turn_failed("s1")) == 0


def test_concurrent_turn_on_same_session_conflicts() -> None:
    slow = ScriptedRunner([("sleep", 0.3), ("token", "ok")])
    with TestClient(create_app(service=_service(slow))) as client:
        assert client.post("/sessions/s1/messages", json={"input": "first"}).status_code == 200
        conflict = client.post("/sessions/s1/messages", json={"input": "second"})
        assert conflict.status_code == 409
        assert "s1" in conflict.json()["detail"]
        assert client.post("/sessions/s2/messages", json={"input": "other"}).status_code == 200


def test_parse_kinds() -> None:
    assert parse_kinds(None) == list(TopicKind)
    assert parse_kinds(" Tool_Event , ") == [TopicKind.TOOL_EVENT]
    with pytest.raises(ValueError):
        parse_kinds("tool_event,bogus")


def test_response_models_document_themselves() -> None:
    for model in (
        schemas.EnsureSessionResponse,
        schemas.MessageResponse,
        schemas.DocumentResponse,
        schemas.SessionResponse,
    ):
        assert model.model_json_schema().get("description"), model.__name__
