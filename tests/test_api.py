import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from stepagent.agents.agent_manager import DEFAULT_AGENT, agent_configs
from stepagent.agents.library.research_agent.service import ResearchAgentService
from stepagent.api import app

from .helpers import FAKE_TOOLS, scripted_model


@pytest.fixture
def client(monkeypatch):
    service = ResearchAgentService(
        model=scripted_model(AIMessage(content="Hello from the agent")),
        tools=FAKE_TOOLS,
        use_tools=True,
    )
    monkeypatch.setattr(agent_configs[DEFAULT_AGENT], "_cached_agent", service)
    with TestClient(app) as test_client:
        yield test_client


def test_chat_turn_returns_answer_and_state(client):
    response = client.post("/chat/conv-1", json={"message": "hi"})

    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == "Hello from the agent"
    assert body["rounds"] == 1
    assert body["state"]["status"] == "idle"


def test_state_endpoint(client):
    assert client.get("/chat/conv-1/state").status_code == 404

    client.post("/chat/conv-1", json={"message": "hi"})
    response = client.get("/chat/conv-1/state")

    assert response.status_code == 200
    assert response.json()["conversation_id"] == "conv-1"


def test_delete_conversation(client):
    client.post("/chat/conv-1", json={"message": "hi"})

    assert client.delete("/chat/conv-1").status_code == 204
    assert client.get("/chat/conv-1/state").status_code == 404


def test_unknown_model_is_rejected(client):
    response = client.post("/chat/conv-1", json={"message": "hi", "model": "gpt-99"})

    assert response.status_code == 400


def test_info_lists_agents(client):
    body = client.get("/info").json()

    assert [agent["key"] for agent in body["agents"]] == [DEFAULT_AGENT]
