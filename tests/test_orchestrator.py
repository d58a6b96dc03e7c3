"""WorkflowAgent — pipeline ordering, caching, failure handling and confidence.

Tests:
- end-to-end heuristic run for a scraping request
- cache hit short-circuits the pipeline (backend not called again)
- fatal stage failure keeps partial results in the ErrorContext
- timeout → llm_error, registry miss → tool_registry_miss
- non-fatal validation/suggestion failures, including a raising parameter check
- confidence aggregation edge cases
"""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from workflow_copilot.agent.cache import ResultCache
from workflow_copilot.agent.errors import ErrorKind
from workflow_copilot.agent.generation import WorkflowGenerationService
from workflow_copilot.agent.models import EntityExtraction, IntentClassification, ParsedIntent
from workflow_copilot.agent.orchestrator import (
    CACHE_HIT_CONFIDENCE,
    WorkflowAgent,
    aggregate_confidence,
    new_session_id,
)
from workflow_copilot.agent.pipeline_tools import make_default_registry
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.agent.tools import BaseTool, ToolMetadata, ToolResult
from workflow_copilot.config import AgentSettings
from workflow_copilot.reasoning import GenerationBackend, GenerationResponse

SCRAPE_REQUEST = "Scrape https://example.com and summarize it"


class StubTool(BaseTool):
    """Replaces a pipeline tool with canned behaviour."""

    def __init__(
        self,
        name: str,
        result: ToolResult | None = None,
        exc: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.parameters = []
        self._result = result or ToolResult(success=True, data=None)
        self._exc = exc
        self._delay = delay
        self.calls: list[dict[str, Any]] = []

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        self.calls.append(params)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._exc is not None:
            raise self._exc
        return self._result


class RaisingCheckTool(StubTool):
    """A tool whose parameter check itself blows up."""

    def validate(self, params: dict[str, Any]):
        raise RuntimeError("parameter check exploded")


def _agent(
    backend: GenerationBackend | None = None,
    settings: AgentSettings | None = None,
    cache: ResultCache | None = None,
) -> WorkflowAgent:
    settings = settings or AgentSettings()
    cache = ResultCache() if cache is None else cache
    registry = make_default_registry(WorkflowGenerationService(backend, settings), cache)
    return WorkflowAgent(registry, cache, settings, session_id="session_test")


def _mock_backend(content: str = "not json at all") -> MagicMock:
    backend = MagicMock(spec=GenerationBackend)
    backend.generate = AsyncMock(return_value=GenerationResponse(content=content, usage={}))
    backend.model_id = "mock/model"
    return backend


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_scraping_request_on_heuristics(self):
        result = await _agent().process_request(SCRAPE_REQUEST)

        assert result.success
        parsed = result.data["parsedIntent"]
        assert isinstance(parsed, ParsedIntent)
        assert parsed.intent == "WEB_SCRAPING"
        assert parsed.entities.urls == ["https://example.com"]
        types = [n.type for n in parsed.workflow.nodes]
        assert types[0] == "dataInput"
        assert types[-1] == "dataOutput"
        assert "webScraping" in types
        assert "llmTask" in types
        assert result.data["validation"].is_valid
        assert result.data["suggestions"]

    @pytest.mark.asyncio
    async def test_tools_used_in_pipeline_order(self):
        result = await _agent().process_request(SCRAPE_REQUEST)
        assert result.tools_used == [
            "cache_lookup",
            "classify_intent",
            "extract_entities",
            "generate_workflow",
            "validate_workflow",
            "generate_suggestions",
        ]

    @pytest.mark.asyncio
    async def test_confidence_is_weighted_average(self):
        result = await _agent().process_request(SCRAPE_REQUEST)
        # intent 0.7, entities 1.0, workflow 0.9 (medium, in+out, edges), validation 1.0
        assert result.confidence == pytest.approx(0.88)

    @pytest.mark.asyncio
    async def test_stage_metrics_recorded(self):
        result = await _agent().process_request(SCRAPE_REQUEST)
        stages = [m["stage"] for m in result.stage_metrics]
        assert stages[0] == "cache_probe"
        assert "intent_classification" in stages
        assert "suggestion_generation" in stages

    @pytest.mark.asyncio
    async def test_parallel_optional_stages_give_same_result(self):
        result = await _agent(settings=AgentSettings(parallel_execution=True)).process_request(
            SCRAPE_REQUEST
        )
        assert result.success
        assert result.tools_used[-2:] == ["validate_workflow", "generate_suggestions"]


# ---------------------------------------------------------------------------
# Cache short-circuit
# ---------------------------------------------------------------------------


class TestCacheShortCircuit:
    @pytest.mark.asyncio
    async def test_second_identical_request_skips_backend(self):
        backend = _mock_backend()
        agent = _agent(backend=backend)

        first = await agent.process_request(SCRAPE_REQUEST)
        calls_after_first = backend.generate.await_count
        assert calls_after_first == 3

        second = await agent.process_request("  scrape https://EXAMPLE.com   and summarize it")
        assert backend.generate.await_count == calls_after_first
        assert second.success
        assert second.tools_used == ["cache_lookup"]
        assert second.confidence == CACHE_HIT_CONFIDENCE
        assert second.data["parsedIntent"].intent == first.data["parsedIntent"].intent

    @pytest.mark.asyncio
    async def test_broken_cache_is_treated_as_miss(self):
        cache = ResultCache()
        agent = _agent(cache=cache)
        cache.lookup = MagicMock(side_effect=RuntimeError("cache down"))
        result = await agent.process_request(SCRAPE_REQUEST)
        assert result.success
        assert result.tools_used[0] == "cache_lookup"
        assert len(result.tools_used) == 6

    @pytest.mark.asyncio
    async def test_store_failure_is_not_fatal(self):
        cache = ResultCache()
        agent = _agent(cache=cache)
        cache.store = MagicMock(side_effect=RuntimeError("disk full"))
        result = await agent.process_request(SCRAPE_REQUEST)
        assert result.success


# ---------------------------------------------------------------------------
# Fatal failures
# ---------------------------------------------------------------------------


class TestFatalFailures:
    @pytest.mark.asyncio
    async def test_generation_failure_preserves_partial_results(self):
        agent = _agent()
        agent.registry.register(StubTool(
            "generate_workflow",
            ToolResult(success=False, error="model refused", error_kind="llm_error"),
        ))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        assert result.confidence == 0.0
        assert result.error == "model refused"
        assert result.tools_used == ["cache_lookup", "classify_intent", "extract_entities"]
        ctx = result.error_context
        assert ctx.stage == "workflow_generation"
        assert ctx.tool_name == "generate_workflow"
        assert ctx.error_kind is ErrorKind.LLM_ERROR
        assert isinstance(ctx.partial_results["intent"], IntentClassification)
        assert isinstance(ctx.partial_results["entities"], EntityExtraction)
        assert "workflow" not in ctx.partial_results
        assert ctx.input_parameters["userInput"] == SCRAPE_REQUEST
        assert ctx.session_id == "session_test"

    @pytest.mark.asyncio
    async def test_failed_request_is_not_cached(self):
        agent = _agent()
        agent.registry.register(StubTool(
            "generate_workflow", ToolResult(success=False, error="nope"),
        ))
        await agent.process_request(SCRAPE_REQUEST)
        assert len(agent.cache) == 0

    @pytest.mark.asyncio
    async def test_stage_timeout_becomes_llm_error(self):
        agent = _agent(settings=AgentSettings(stage_timeout_seconds=0.05))
        slow = StubTool("classify_intent", delay=5)
        agent.registry.register(slow)

        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        assert result.error_context.error_kind is ErrorKind.LLM_ERROR
        assert result.error_context.stage == "intent_classification"
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_missing_tool_is_registry_miss(self):
        agent = _agent()
        agent.registry.unregister("extract_entities")

        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        ctx = result.error_context
        assert ctx.error_kind is ErrorKind.TOOL_REGISTRY_MISS
        assert ctx.stage == "entity_extraction"
        assert "intent" in ctx.partial_results
        assert "Tool 'extract_entities' is not registered" == result.error

    @pytest.mark.asyncio
    async def test_tool_exception_is_wrapped(self):
        agent = _agent()
        agent.registry.register(StubTool("classify_intent", exc=RuntimeError("boom")))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        ctx = result.error_context
        assert ctx.error_kind is ErrorKind.TOOL_EXECUTION_FAILURE
        assert "boom" in ctx.message
        assert ctx.stack_trace and "RuntimeError" in ctx.stack_trace

    @pytest.mark.asyncio
    async def test_raising_parameter_check_is_tool_failure_with_inputs(self):
        agent = _agent()
        tool = RaisingCheckTool("generate_workflow")
        agent.registry.register(tool)

        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        assert tool.calls == []
        ctx = result.error_context
        assert ctx.error_kind is ErrorKind.TOOL_EXECUTION_FAILURE
        assert ctx.stage == "workflow_generation"
        assert ctx.tool_name == "generate_workflow"
        assert "parameter check exploded" in ctx.message
        assert set(ctx.input_parameters) == {"userInput", "intent", "entities"}

    @pytest.mark.asyncio
    async def test_unusable_tool_data_keeps_input_parameters(self):
        agent = _agent()
        agent.registry.register(StubTool(
            "generate_workflow", ToolResult(success=True, data="not a workflow"),
        ))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        ctx = result.error_context
        assert ctx.error_kind is ErrorKind.TOOL_EXECUTION_FAILURE
        assert ctx.tool_name == "generate_workflow"
        assert ctx.input_parameters["userInput"] == SCRAPE_REQUEST
        assert isinstance(ctx.input_parameters["intent"], IntentClassification)
        assert isinstance(ctx.input_parameters["entities"], EntityExtraction)

    @pytest.mark.asyncio
    async def test_unexpected_error_outside_tools_is_unknown(self):
        class ExplodingRegistry(ToolRegistry):
            def get(self, name):
                raise KeyError(name)

        agent = WorkflowAgent(ExplodingRegistry(), ResultCache(), session_id="s")
        result = await agent.process_request(SCRAPE_REQUEST)

        assert not result.success
        assert result.error_context.error_kind is ErrorKind.UNKNOWN
        assert result.error_context.stage == "intent_classification"

    @pytest.mark.asyncio
    async def test_empty_input_fails_classification(self):
        agent = _agent()
        result = await agent.process_request("")
        assert not result.success
        assert result.error_context.error_kind is ErrorKind.TOOL_EXECUTION_FAILURE


# ---------------------------------------------------------------------------
# Non-fatal stages
# ---------------------------------------------------------------------------


class TestOptionalStages:
    @pytest.mark.asyncio
    async def test_validation_failure_is_absorbed(self):
        agent = _agent()
        agent.registry.register(StubTool("validate_workflow", exc=RuntimeError("validator down")))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert result.success
        assert result.data["validation"] is None
        assert "validate_workflow" in result.tools_used

    @pytest.mark.asyncio
    async def test_suggestion_failure_is_absorbed_and_not_listed(self):
        agent = _agent()
        agent.registry.register(StubTool(
            "generate_suggestions", ToolResult(success=False, error="no ideas"),
        ))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert result.success
        assert result.data["suggestions"] == []
        assert "generate_suggestions" not in result.tools_used

    @pytest.mark.asyncio
    async def test_raising_parameter_check_in_suggestions_is_absorbed(self):
        cache = ResultCache()
        agent = _agent(cache=cache)
        agent.registry.register(RaisingCheckTool("generate_suggestions"))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert result.success
        assert result.data["suggestions"] == []
        assert result.data["validation"].is_valid
        assert "generate_suggestions" not in result.tools_used
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_raising_parameter_check_in_validation_is_absorbed(self):
        agent = _agent(settings=AgentSettings(parallel_execution=True))
        agent.registry.register(RaisingCheckTool("validate_workflow"))

        result = await agent.process_request(SCRAPE_REQUEST)

        assert result.success
        assert result.data["validation"] is None
        assert "validate_workflow" in result.tools_used

    @pytest.mark.asyncio
    async def test_missing_validation_leaves_it_out_of_confidence(self):
        agent = _agent()
        agent.registry.register(StubTool("validate_workflow", exc=RuntimeError("x")))
        result = await agent.process_request(SCRAPE_REQUEST)
        # (0.7*0.3 + 1.0*0.2 + 0.9*0.3) / 0.8
        assert result.confidence == pytest.approx(0.85)


# ---------------------------------------------------------------------------
# Confidence aggregation and helpers
# ---------------------------------------------------------------------------


class TestAggregateConfidence:
    def test_all_stages(self):
        value = aggregate_confidence(
            {"intent": 1.0, "entities": 0.5, "workflow": 1.0, "validation": 0.5}
        )
        assert value == pytest.approx(0.8)

    def test_no_stages_is_neutral(self):
        assert aggregate_confidence({}) == 0.5

    def test_none_values_are_skipped(self):
        assert aggregate_confidence({"intent": 0.4, "entities": None}) == pytest.approx(0.4)

    def test_custom_weights(self):
        assert aggregate_confidence({"a": 1.0, "b": 0.0}, {"a": 3, "b": 1}) == pytest.approx(0.75)


class TestHelpers:
    def test_session_id_format(self):
        sid = new_session_id()
        prefix, millis, suffix = sid.split("_")
        assert prefix == "session"
        assert millis.isdigit()
        assert len(suffix) == 9

    def test_execution_plan_follows_settings(self):
        agent = _agent(settings=AgentSettings(parallel_execution=True))
        plan = agent.create_execution_plan(["validate_workflow", "generate_suggestions"])
        assert plan.parallel
        assert plan.dependencies == {"validate_workflow": [], "generate_suggestions": []}

    def test_tool_metadata_defaults(self):
        assert ToolMetadata().confidence is None
