"""HTTP surface — FastAPI endpoints via TestClient (heuristic backend)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from workflow_copilot.api import app, limiter

SCRAPE_REQUEST = "Scrape https://example.com and summarize it"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("COPILOT_BACKEND", "none")
    monkeypatch.delenv("AGENT_API_KEY", raising=False)
    limiter.reset()
    with TestClient(app) as c:
        yield c


class TestSystem:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["api"] == "ok"
        assert body["backend"] == "heuristic"
        assert body["tools"] == 6

    def test_session_info(self, client):
        client.post("/workflows", json={"text": SCRAPE_REQUEST})
        body = client.get("/session").json()
        assert body["sessionId"].startswith("session_")
        assert body["requestsProcessed"] == 1
        assert body["history"][0]["input"] == SCRAPE_REQUEST


class TestWorkflows:
    def test_generate_workflow(self, client):
        resp = client.post("/workflows", json={"text": SCRAPE_REQUEST})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        parsed = body["data"]["parsedIntent"]
        assert parsed["intent"] == "WEB_SCRAPING"
        assert parsed["entities"]["urls"] == ["https://example.com"]
        assert body["data"]["validation"]["isValid"] is True
        assert body["toolsUsed"][0] == "cache_lookup"

    def test_repeat_request_is_cached(self, client):
        client.post("/workflows", json={"text": SCRAPE_REQUEST})
        body = client.post("/workflows", json={"text": SCRAPE_REQUEST}).json()
        assert body["toolsUsed"] == ["cache_lookup"]
        assert body["confidence"] == 0.9

    def test_empty_text_rejected(self, client):
        assert client.post("/workflows", json={"text": ""}).status_code == 422

    def test_validate_endpoint_reports_cycle(self, client):
        workflow = {
            "nodes": [
                {"id": "A", "type": "llmTask", "label": "A", "config": {"prompt": "x"}},
                {"id": "B", "type": "llmTask", "label": "B", "config": {"prompt": "y"}},
            ],
            "edges": [
                {"id": "e1", "source": "A", "target": "B"},
                {"id": "e2", "source": "B", "target": "A"},
            ],
            "topology": {"type": "linear"},
        }
        resp = client.post("/workflows/validate", json={"workflow": workflow})
        assert resp.status_code == 200
        body = resp.json()
        assert body["isValid"] is False
        assert "Circular dependency detected: A -> B -> A" in body["issues"]


class TestToolsAndCache:
    def test_list_tools(self, client):
        names = [t["name"] for t in client.get("/tools").json()]
        assert names[0] == "cache_lookup"
        assert "generate_suggestions" in names

    def test_get_tool(self, client):
        body = client.get("/tools/validate_workflow").json()
        assert body["parameters"][0]["name"] == "workflow"

    def test_unknown_tool_404(self, client):
        assert client.get("/tools/nope").status_code == 404

    def test_cache_stats_and_clear(self, client):
        client.post("/workflows", json={"text": SCRAPE_REQUEST})
        stats = client.get("/cache/stats").json()
        assert stats["size"] == 1
        assert client.delete("/cache").json() == {"removed": 0}


class TestAuth:
    def test_api_key_enforced_when_set(self, client, monkeypatch):
        monkeypatch.setenv("AGENT_API_KEY", "secret")
        assert client.get("/health").status_code == 401
        ok = client.get("/health", headers={"Authorization": "Bearer secret"})
        assert ok.status_code == 200
