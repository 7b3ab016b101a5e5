"""REST and WebSocket endpoint tests against the FastAPI app."""

import pytest
from fastapi.testclient import TestClient

from app.main import app, settings


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path}/api.db")
    monkeypatch.setattr(settings, "mock_redis", True)
    monkeypatch.setattr(settings, "openai_api_key", None)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["upstream_configured"] is False
    assert all(body["managers"].values())


def test_status_reports_sessions_and_cache(client):
    body = client.get("/status").json()

    assert body["active_sessions"] == 0
    assert body["cache"] == "fallback"
    assert body["database"] == "connected"


def test_sessions_empty(client):
    assert client.get("/sessions").json() == {"sessions": {}, "total": 0}


def test_unknown_session_is_404(client):
    response = client.get("/api/sessions/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"


def test_topics(client):
    topics = client.get("/api/topics").json()

    assert len(topics) == 6
    assert {"id": "travel", "title": "Travel & Tourism",
            "description": "Navigate airports, hotels, and tourist attractions", "level": "Beginner"} in topics


@pytest.mark.parametrize(
    "text, score",
    [("Hello there.", 85), ("hello there", 65), ("   ", 50)],
)
def test_grammar_check(client, text, score):
    response = client.post("/api/grammar-check", json={"text": text})

    assert response.status_code == 200
    assert response.json()["score"] == score


def test_vocabulary_lifecycle(client):
    url = "/api/users/learner-1/vocabulary"

    created = client.post(url, json={"word": "itinerary", "definition": "A planned route"})
    assert created.status_code == 201
    word = created.json()
    assert word["mastery_level"] == 0

    assert client.post(url, json={"word": "itinerary"}).status_code == 409
    assert [w["word"] for w in client.get(url).json()] == ["itinerary"]

    practiced = client.post(f"{url}/{word['id']}/practice").json()
    assert practiced["times_practiced"] == 1
    assert practiced["mastery_level"] == 10

    assert client.delete(f"{url}/{word['id']}").status_code == 200
    assert client.delete(f"{url}/{word['id']}").status_code == 404
    assert client.post(f"{url}/{word['id']}/practice").status_code == 404


def test_blank_vocabulary_word_rejected(client):
    assert client.post("/api/users/learner-1/vocabulary", json={"word": "  "}).status_code == 400


def test_conversation_history_empty(client):
    assert client.get("/api/users/learner-1/conversations").json() == []
    assert client.delete("/api/users/learner-1/conversations/nope").status_code == 404
    assert client.get("/api/users/learner-1/summary").json()["total_conversations"] == 0


def test_relay_refused_without_api_key(client):
    with client.websocket_connect("/realtime-voice?user_id=learner-1&topic=daily") as websocket:
        frame = websocket.receive_json()

    assert frame["type"] == "error"
    assert frame["error"]["type"] == "upstream_unavailable"
