"""AgentManager — session facade, history and cache maintenance."""

from __future__ import annotations

import pytest

from workflow_copilot.agent.cache import ResultCache
from workflow_copilot.agent.errors import ErrorKind, PipelineError
from workflow_copilot.agent.generation import WorkflowGenerationService
from workflow_copilot.agent.manager import SUGGESTIONS_UNAVAILABLE, AgentManager
from workflow_copilot.agent.models import ParsedIntent
from workflow_copilot.agent.pipeline_tools import make_default_registry
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.config import AgentSettings

SCRAPE_REQUEST = "Scrape https://example.com and summarize it"


def _manager(**overrides) -> AgentManager:
    """Manager wired on heuristics only (no generation backend)."""
    settings = AgentSettings(**overrides)
    cache = ResultCache(settings.cache_max_size, settings.cache_ttl_seconds)
    registry = make_default_registry(WorkflowGenerationService(None, settings), cache)
    return AgentManager(registry, cache, settings)


class TestSession:
    def test_session_id_shape(self):
        manager = _manager()
        assert manager.session_id.startswith("session_")
        assert manager.agent.session_id == manager.session_id

    def test_explicit_session_id(self):
        cache = ResultCache()
        registry = make_default_registry(WorkflowGenerationService(None), cache)
        manager = AgentManager(registry, cache, session_id="session_fixed")
        assert manager.session_info()["sessionId"] == "session_fixed"

    def test_backend_name_without_backend(self):
        assert _manager().backend_name == "heuristic"

    def test_build_with_heuristic_provider(self, monkeypatch):
        monkeypatch.setenv("COPILOT_BACKEND", "none")
        manager = AgentManager.build(settings=AgentSettings())
        assert manager.backend_name == "heuristic"
        assert len(manager.available_tools()) == 6


class TestRequests:
    @pytest.mark.asyncio
    async def test_history_records_each_request(self):
        manager = _manager()
        await manager.process_workflow_request(SCRAPE_REQUEST)
        await manager.process_workflow_request(SCRAPE_REQUEST)
        assert len(manager.history) == 2
        assert manager.history[0].success
        assert manager.history[1].tools_used == ["cache_lookup"]
        assert manager.session_info()["requestsProcessed"] == 2

    @pytest.mark.asyncio
    async def test_generate_from_description_returns_parsed_intent(self):
        parsed = await _manager().generate_workflow_from_description(SCRAPE_REQUEST)
        assert isinstance(parsed, ParsedIntent)
        assert parsed.intent == "WEB_SCRAPING"

    @pytest.mark.asyncio
    async def test_generate_from_description_raises_on_failure(self):
        manager = _manager()
        manager.registry.unregister("classify_intent")
        with pytest.raises(PipelineError) as excinfo:
            await manager.generate_workflow_from_description(SCRAPE_REQUEST)
        assert excinfo.value.kind is ErrorKind.TOOL_REGISTRY_MISS
        assert excinfo.value.context.stage == "intent_classification"

    @pytest.mark.asyncio
    async def test_suggestions_for_existing_workflow(self):
        manager = _manager()
        parsed = await manager.generate_workflow_from_description(SCRAPE_REQUEST)
        suggestions = await manager.get_suggestions("scrape the web", workflow=parsed.workflow)
        assert suggestions
        assert len(suggestions) <= 10

    @pytest.mark.asyncio
    async def test_suggestions_fallback_message_on_failure(self):
        manager = _manager()
        manager.registry.unregister("generate_workflow")
        assert await manager.get_suggestions("anything") == [SUGGESTIONS_UNAVAILABLE]


class TestValidateWorkflow:
    @pytest.mark.asyncio
    async def test_validates_plain_dict(self):
        workflow = {
            "nodes": [
                {"id": "a", "type": "dataInput", "label": "In", "config": {"dataType": "text"}},
                {"id": "b", "type": "dataOutput", "label": "Out", "config": {"format": "json"}},
            ],
            "edges": [{"id": "e1", "source": "a", "target": "b"}],
            "topology": {"type": "linear"},
        }
        report = await _manager().validate_workflow(workflow)
        assert report["isValid"] is True
        assert report["issues"] == []

    @pytest.mark.asyncio
    async def test_missing_tool_raises(self):
        manager = _manager()
        manager.registry.unregister("validate_workflow")
        with pytest.raises(PipelineError) as excinfo:
            await manager.validate_workflow({"nodes": []})
        assert excinfo.value.kind is ErrorKind.TOOL_REGISTRY_MISS


class TestIntrospection:
    def test_tool_info(self):
        info = _manager().tool_info("generate_workflow")
        assert info["name"] == "generate_workflow"
        required = [p["name"] for p in info["parameters"] if p["required"]]
        assert required == ["userInput", "intent", "entities"]

    def test_tool_info_unknown(self):
        assert _manager().tool_info("nope") is None

    @pytest.mark.asyncio
    async def test_cache_stats_through_cache_tool(self):
        manager = _manager()
        await manager.process_workflow_request(SCRAPE_REQUEST)
        stats = manager.cache_stats()
        assert stats["size"] == 1
        assert stats["misses"] == 1

    def test_cache_stats_without_cacheable_tool(self):
        cache = ResultCache()
        manager = AgentManager(ToolRegistry(), cache)
        assert manager.cache_stats() == {"size": 0, "hitRate": 0}
        assert manager.clear_cache() == 0

    @pytest.mark.asyncio
    async def test_clear_cache_only_removes_expired(self):
        manager = _manager()
        await manager.process_workflow_request(SCRAPE_REQUEST)
        assert manager.clear_cache() == 0
        assert manager.cache_stats()["size"] == 1
