import logging

import pytest
from fastapi.testclient import TestClient

from crm_copilot.api import create_app
from crm_copilot.backends.base import ModelReply
from crm_copilot.crm.service import InMemoryCompanyService
from crm_copilot.errors import ConfigurationError
from crm_copilot.events import EventHub
from crm_copilot.navigation import Navigator
from crm_copilot.session import ConversationSession
from tests.fakes import FakeTextBackend, tool_call


@pytest.fixture
def backends():
    return []


@pytest.fixture
def client(backends):
    crm = InMemoryCompanyService()

    def factory(session_id: str) -> ConversationSession:
        backend = FakeTextBackend(
            [
                ModelReply(tool_calls=[tool_call("navigateTo", "n1", page="kanban")]),
                ModelReply(text="C'est fait."),
            ],
            default=ModelReply(text="Autre chose ?"),
        )
        backends.append(backend)
        hub = EventHub()
        return ConversationSession(crm, text_backend=backend, hub=hub, navigator=Navigator(hub))

    return TestClient(create_app(factory, logger=logging.getLogger("test-api")))


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json() == {"status": "healthy"}


def test_chat_runs_tools_and_returns_reply(client):
    response = client.post("/chat", json={"message": "Ouvre le kanban"})

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "C'est fait."
    assert body["tool_calls"] == ["navigateTo"]
    assert body["is_error"] is False
    assert body["session_id"].startswith("session_")


def test_session_is_reused(client, backends):
    first = client.post("/chat", json={"message": "Ouvre le kanban"}).json()
    second = client.post("/chat", json={"message": "Merci", "session_id": first["session_id"]}).json()

    assert second["session_id"] == first["session_id"]
    assert second["response"] == "Autre chose ?"
    assert second["tool_calls"] == []
    assert len(backends) == 1


def test_get_session_transcript(client):
    session_id = client.post("/chat", json={"message": "Ouvre le kanban"}).json()["session_id"]

    body = client.get(f"/session/{session_id}").json()

    assert body["location"] == "/kanban"
    assert [m["role"] for m in body["messages"]] == ["user", "tool", "model"]


def test_client_supplied_session_id_is_kept(client):
    session_id = client.post("/chat", json={"message": "Merci", "session_id": "abc", "location": "/inbox"}).json()[
        "session_id"
    ]

    assert session_id == "abc"


def test_delete_session(client):
    session_id = client.post("/chat", json={"message": "Salut"}).json()["session_id"]

    assert client.delete(f"/session/{session_id}").json() == {"status": "deleted", "session_id": session_id}
    assert client.delete(f"/session/{session_id}").status_code == 404
    assert client.get(f"/session/{session_id}").status_code == 404


def test_backend_error_is_flagged():
    def factory(session_id: str) -> ConversationSession:
        hub = EventHub()
        return ConversationSession(
            InMemoryCompanyService(),
            text_backend=FakeTextBackend([RuntimeError("503 unavailable")]),
            hub=hub,
            navigator=Navigator(hub),
        )

    client = TestClient(create_app(factory, logger=logging.getLogger("test-api")))

    body = client.post("/chat", json={"message": "Salut"}).json()

    assert body["is_error"] is True


def test_missing_credentials_return_503():
    def factory(session_id: str) -> ConversationSession:
        raise ConfigurationError("GEMINI_API_KEY environment variable not set")

    client = TestClient(create_app(factory, logger=logging.getLogger("test-api")))

    response = client.post("/chat", json={"message": "Salut"})

    assert response.status_code == 503
    assert "GEMINI_API_KEY" in response.json()["detail"]
