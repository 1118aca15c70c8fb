from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from tastetwin.app import app
from tastetwin.context import build_context
from tastetwin.llm.config import LLMConfig
from tastetwin.llm.groq_client import FALLBACK_REPLY
from tastetwin.qloo.config import QlooConfig

PLACES = {
    "results": {
        "entities": [
            {"entity_id": "E1", "name": "Trattoria Roma", "type": "urn:entity:place"},
        ]
    }
}


TAG_TYPES = {"results": {"tags": [{"id": "urn:tag:genre:media", "name": "Genre"}]}}


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/v2/tags/types":
        if request.url.params.get("filter.parents.types") == "urn:entity:book":
            return httpx.Response(503, text="down")
        return httpx.Response(200, json=TAG_TYPES)
    return httpx.Response(200, json=PLACES)


@pytest.fixture
def client():
    app.state.context = build_context(
        QlooConfig(api_key="k", base_url="https://qloo.test"),
        LLMConfig(api_key="", enabled=False, ai_routing=False),
        transport=httpx.MockTransport(_handler),
    )
    with TestClient(app) as test_client:
        yield test_client
    app.state.context = None


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_location_suggestions(client):
    resp = client.get("/locations/suggest", params={"q": "fran"})
    assert "San Francisco" in resp.json()["suggestions"]


def test_chat_recommendation(client):
    resp = client.post("/chat", json={"message": "Italian restaurants in Paris"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["route"] == "recommendation"
    assert body["entities"][0]["name"] == "Trattoria Roma"
    assert body["metadata"]["parsed_count"] == 1


def test_chat_general(client):
    body = client.post("/chat", json={"message": "hello"}).json()
    assert body["route"] == "general"
    assert body["message"] == FALLBACK_REPLY


def test_chat_rejects_empty_body(client):
    assert client.post("/chat", json={"message": ""}).status_code == 422


def test_persona_is_per_session(client):
    client.post("/chat", json={"message": "I love jazz"})
    persona = client.get("/persona").json()
    assert [i["name"] for i in persona["interests"]] == ["jazz"]

    client.cookies.clear()
    assert client.get("/persona").json()["interests"] == []


def test_add_interest_dedups(client):
    first = client.post("/persona/interests", json={"name": "Sushi"}).json()
    second = client.post("/persona/interests", json={"name": "sushi"}).json()
    assert first["status"] == "created"
    assert second["status"] == "exists"
    assert second["interest"]["id"] == first["interest"]["id"]


def test_feedback(client):
    client.post("/persona/interests", json={"name": "Sushi", "confidence": 0.5})
    resp = client.post("/feedback", json={"interest_name": "sushi", "is_positive": True})
    assert resp.status_code == 200
    assert resp.json()["confidence"] == pytest.approx(0.6)


def test_feedback_unknown_interest(client):
    resp = client.post("/feedback", json={"interest_name": "polka", "is_positive": False})
    assert resp.status_code == 404


def test_usage(client):
    body = client.get("/usage").json()
    assert body["total"]["total_tokens"] == 0
    assert body["session"]["calls"] == 0


def test_analytics_after_chat(client):
    client.post("/chat", json={"message": "Italian restaurants in Paris"})
    body = client.get("/analytics").json()
    assert body["total_calls"] == 1
    assert body["total_recommendations"] == 1
    assert body["top_locations"] == [{"name": "Paris", "count": 1}]


def test_tag_types(client):
    resp = client.get("/tags/types", params={"category": "urn:entity:movie"})
    assert resp.status_code == 200
    assert resp.json() == {"category": "urn:entity:movie", "tag_types": TAG_TYPES}


def test_tag_types_without_category(client):
    assert client.get("/tags/types").json()["category"] is None


def test_tag_types_rejects_unknown_category(client):
    assert client.get("/tags/types", params={"category": "urn:entity:spaceship"}).status_code == 422


def test_tag_types_upstream_failure(client):
    resp = client.get("/tags/types", params={"category": "urn:entity:book"})
    assert resp.status_code == 502
    assert "503" in resp.json()["detail"]


def test_analytics_reports_tag_type_cache(client):
    client.get("/tags/types", params={"category": "urn:entity:movie"})
    client.get("/tags/types", params={"category": "urn:entity:movie"})
    cache = client.get("/analytics").json()["cache"]["tag_types"]
    assert cache["hits"] == 1
    assert cache["misses"] == 1
    assert cache["size"] == 1
