"""ToolRegistry and the BaseTool parameter contract."""

from __future__ import annotations

from typing import Any

import pytest

from workflow_copilot.agent.cache import ResultCache
from workflow_copilot.agent.generation import WorkflowGenerationService
from workflow_copilot.agent.pipeline_tools import CacheLookupTool, make_default_registry
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.agent.tools import BaseTool, Cacheable, ToolParameter, ToolResult


class EchoTool(BaseTool):
    name = "echo"
    description = "Return the message"
    parameters = [
        ToolParameter("message", "string", "Text to echo", required=True),
        ToolParameter("times", "number", "Repeat count", default=1),
        ToolParameter("tags", "array", "Optional tags"),
    ]

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        params = self.apply_defaults(params)
        return ToolResult(success=True, data=params["message"] * int(params["times"]))


class OtherEcho(EchoTool):
    description = "Replacement"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_register_and_get(self):
        registry = ToolRegistry()
        tool = EchoTool()
        registry.register(tool)
        assert registry.get("echo") is tool
        assert "echo" in registry
        assert len(registry) == 1

    def test_get_unknown_returns_none(self):
        assert ToolRegistry().get("missing") is None

    def test_overwrite_keeps_position(self):
        registry = ToolRegistry()
        first = EchoTool()
        registry.register(first)
        registry.register(CacheLookupTool(ResultCache()))
        replacement = OtherEcho()
        registry.register(replacement)
        assert registry.list() == ["echo", "cache_lookup"]
        assert registry.get("echo") is replacement

    def test_unregister_missing_is_noop(self):
        registry = ToolRegistry()
        registry.unregister("nothing")
        assert len(registry) == 0

    def test_clear(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        registry.clear()
        assert registry.list() == []

    def test_nameless_tool_rejected(self):
        class Nameless(EchoTool):
            name = ""

        with pytest.raises(ValueError):
            ToolRegistry().register(Nameless())

    def test_describe_is_json_schema(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        (definition,) = registry.describe()
        assert definition["name"] == "echo"
        assert definition["parameters"]["required"] == ["message"]
        assert definition["parameters"]["properties"]["times"]["default"] == 1

    def test_default_registry_order(self):
        registry = make_default_registry(WorkflowGenerationService(None), ResultCache())
        assert registry.list() == [
            "cache_lookup",
            "classify_intent",
            "extract_entities",
            "generate_workflow",
            "validate_workflow",
            "generate_suggestions",
        ]

    def test_cache_tool_is_cacheable(self):
        registry = make_default_registry(WorkflowGenerationService(None), ResultCache())
        assert isinstance(registry.get("cache_lookup"), Cacheable)
        assert not isinstance(registry.get("classify_intent"), Cacheable)


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------


class TestParameterValidation:
    def test_valid_params(self):
        check = EchoTool().validate({"message": "hi", "times": 2})
        assert check.is_valid
        assert check.errors == []

    def test_missing_required(self):
        check = EchoTool().validate({})
        assert not check.is_valid
        assert check.errors == ["Required parameter 'message' is missing"]

    def test_wrong_type(self):
        check = EchoTool().validate({"message": "hi", "times": "two"})
        assert not check.is_valid
        assert "Parameter 'times' should be of type number" in check.errors[0]

    def test_bool_is_not_a_number(self):
        check = EchoTool().validate({"message": "hi", "times": True})
        assert not check.is_valid

    def test_unknown_param_is_warning(self):
        check = EchoTool().validate({"message": "hi", "extra": 1})
        assert check.is_valid
        assert check.warnings == ["Unknown parameter 'extra' will be ignored"]

    def test_array_type(self):
        assert EchoTool().validate({"message": "hi", "tags": ["a"]}).is_valid
        assert not EchoTool().validate({"message": "hi", "tags": "a"}).is_valid

    @pytest.mark.asyncio
    async def test_defaults_applied_in_execute(self):
        result = await EchoTool().execute({"message": "ab"})
        assert result.data == "ab"


# ---------------------------------------------------------------------------
# Cache tool
# ---------------------------------------------------------------------------


class TestCacheLookupTool:
    @pytest.mark.asyncio
    async def test_miss_is_success_with_no_data(self):
        tool = CacheLookupTool(ResultCache())
        result = await tool.execute({"key": "unknown"})
        assert result.success
        assert result.data is None
        assert result.metadata.confidence == 0.0

    @pytest.mark.asyncio
    async def test_hit(self):
        cache = ResultCache()
        tool = CacheLookupTool(cache)
        tool.store(tool.generate_key("Hello  World"), {"x": 1})
        result = await tool.execute({"key": "hello_world"})
        assert result.data == {"x": 1}
        assert result.metadata.confidence == 0.9

    @pytest.mark.asyncio
    async def test_empty_key_fails_as_cache_error(self):
        result = await CacheLookupTool(ResultCache()).execute({"key": ""})
        assert not result.success
        assert result.error_kind == "cache_error"
