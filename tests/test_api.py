import pytest
from fastapi.testclient import TestClient

from product_assistant.agent_pipeline import AssistantAgent
from product_assistant.app import create_app
from product_assistant.catalog.models import CatalogSnapshot
from product_assistant.knowledge.knowledge_store import KnowledgeStore
from product_assistant.models import ChatResponse
from product_assistant.session_store import SessionStore

from .conftest import FakeCatalog, FakeOracle, make_settings


@pytest.fixture
def agent(airram):
    settings = make_settings()
    return AssistantAgent(
        oracle=FakeOracle(reply="The AirRAM 3 is £249.99."),
        catalog=FakeCatalog(CatalogSnapshot(products=[airram])),
        knowledge=KnowledgeStore(rows=[]),
        sessions=SessionStore(),
        settings=settings,
    )


@pytest.fixture
def client(agent):
    return TestClient(create_app(settings=make_settings(), agent=agent), raise_server_exceptions=False)


def test_chat_returns_response_only(client):
    reply = client.post("/api/chat", json={"message": "How much is the AirRAM 3?", "sessionId": "web-1"})
    assert reply.status_code == 200
    assert reply.json() == {"response": "The AirRAM 3 is £249.99."}


def test_chat_problem_report_includes_options(client):
    body = client.post("/api/chat", json={"message": "my vacuum stopped working"}).json()
    assert body["showOptions"] is True
    assert body["options"][0] == {
        "label": "Not turning on / Power issue",
        "value": "power issue",
        "action": "troubleshoot_power",
    }


@pytest.mark.parametrize("payload", [{"message": ""}, {"message": "   "}, {}])
def test_blank_message_is_rejected(client, payload):
    reply = client.post("/api/chat", json=payload)
    assert reply.status_code == 400
    assert reply.json() == {"error": "Message is required"}


def test_status_probe(client):
    reply = client.get("/api/chat")
    assert reply.status_code == 200
    assert reply.json() == {"message": "Gtech Product Assistant API", "status": "online"}


def test_sessions_listing_and_transcript(client):
    client.post("/api/chat", json={"message": "Hello there", "sessionId": "web-2"})
    sessions = client.get("/api/sessions").json()
    assert sessions[0]["session_id"] == "web-2"
    assert sessions[0]["title"] == "Hello there"

    transcript = client.get("/api/sessions/web-2").json()
    assert [message["role"] for message in transcript["messages"]] == ["user", "assistant"]
    assert client.get("/api/sessions/unknown").json()["messages"] == []


def test_unhandled_error_returns_support_payload(agent):
    async def explode(message, session_id=None):
        raise RuntimeError("boom")

    agent.handle_message = explode
    client = TestClient(create_app(settings=make_settings(), agent=agent), raise_server_exceptions=False)
    reply = client.post("/api/chat", json={"message": "hi"})
    assert reply.status_code == 500
    body = reply.json()
    assert body["error"] == "Internal server error"
    assert body["showOptions"] is False
    assert "support@example.com" in body["response"]


def test_chat_response_aliases():
    dumped = ChatResponse(response="ok", show_options=True).model_dump(by_alias=True, exclude_none=True)
    assert dumped == {"response": "ok", "showOptions": True}
