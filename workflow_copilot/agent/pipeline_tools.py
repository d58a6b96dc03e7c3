"""The concrete pipeline tools and the default registry factory.

  cache_lookup          CacheLookupTool          (also Cacheable)
  classify_intent       ClassifyIntentTool       {userInput}
  extract_entities      ExtractEntitiesTool      {userInput, intent?}
  generate_workflow     GenerateWorkflowTool     {userInput, intent, entities}
  validate_workflow     ValidateWorkflowTool     {workflow, originalInput?}
  generate_suggestions  GenerateSuggestionsTool  {workflow?, context?}

Object parameters accept either model instances or their camelCase dict form,
so the same tools serve the orchestrator and the HTTP API.

Confidence estimates per tool:
  entities    0.5 + min(0.1·count, 0.4) + 0.2 if URLs + 0.2 if AI tasks (cap 1)
  workflow    0.7 + 0.1 low / 0.05 medium + 0.1 input&output + 0.05 edges
  validation  0.8 − min(0.1·issues, 0.5) + 0.2 if valid (clamped 0..1)
  suggestions 0.8
"""

from __future__ import annotations

import logging
import time
from typing import Any

from workflow_copilot.agent.cache import ResultCache, normalize_cache_key
from workflow_copilot.agent.errors import ErrorKind
from workflow_copilot.agent.generation import WorkflowGenerationService
from workflow_copilot.agent.models import (
    EntityExtraction,
    IntentClassification,
    ValidationResult,
    WorkflowStructure,
    coerce_model,
)
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.agent.tools import (
    BaseTool,
    Cacheable,
    ToolMetadata,
    ToolParameter,
    ToolResult,
)
from workflow_copilot.agent.validator import GraphValidator
from workflow_copilot.reasoning import BackendError

logger = logging.getLogger("workflow_copilot.agent.pipeline_tools")

MAX_SUGGESTIONS = 10


def _failure(message: str, started: float, kind: ErrorKind | None = None) -> ToolResult:
    return ToolResult(
        success=False,
        error=message,
        metadata=ToolMetadata(execution_time=BaseTool._elapsed_ms(started)),
        error_kind=kind.value if kind else None,
    )


# ---------------------------------------------------------------------------
# Confidence estimates
# ---------------------------------------------------------------------------


def entity_confidence(entities: EntityExtraction) -> float:
    confidence = 0.5 + min(entities.total() * 0.1, 0.4)
    if entities.urls:
        confidence += 0.2
    if entities.ai_tasks:
        confidence += 0.2
    return min(confidence, 1.0)


def workflow_confidence(workflow: WorkflowStructure) -> float:
    confidence = 0.7
    if workflow.complexity == "low":
        confidence += 0.1
    elif workflow.complexity == "medium":
        confidence += 0.05
    if workflow.has_node_type("dataInput") and workflow.has_node_type("dataOutput"):
        confidence += 0.1
    if workflow.edges:
        confidence += 0.05
    return min(confidence, 1.0)


def validation_confidence(result: ValidationResult) -> float:
    confidence = 0.8 - min(len(result.issues) * 0.1, 0.5)
    if result.is_valid:
        confidence += 0.2
    return max(min(confidence, 1.0), 0.0)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class CacheLookupTool(BaseTool, Cacheable):
    """Pipeline-facing view of a ResultCache.

    execute() is a pure lookup: success=True with data=None on a miss.
    """

    name = "cache_lookup"
    description = "Look up cached results for similar requests (LRU with TTL)"
    parameters = [
        ToolParameter("key", "string", "The cache key to look up", required=True),
    ]

    def __init__(self, cache: ResultCache) -> None:
        self._cache = cache

    @property
    def cache(self) -> ResultCache:
        return self._cache

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        key = params.get("key")
        if not isinstance(key, str) or not key:
            return _failure("Invalid cache key provided", started, ErrorKind.CACHE_ERROR)
        value = self._cache.lookup(key)
        return ToolResult(
            success=True,
            data=value,
            metadata=ToolMetadata(
                execution_time=self._elapsed_ms(started),
                confidence=0.9 if value is not None else 0.0,
            ),
        )

    @staticmethod
    def generate_key(user_input: str) -> str:
        return normalize_cache_key(user_input)

    # Cacheable
    def lookup(self, key: str) -> Any:
        return self._cache.lookup(key)

    def store(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._cache.store(key, value, ttl)

    def clear_expired(self) -> int:
        return self._cache.clear_expired()

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> Any:
        return self._cache.stats()


# ---------------------------------------------------------------------------
# Generation stages
# ---------------------------------------------------------------------------


class ClassifyIntentTool(BaseTool):
    name = "classify_intent"
    description = "Analyze user input to determine workflow intent and complexity"
    parameters = [
        ToolParameter("userInput", "string", "The user's natural language request", required=True),
    ]

    def __init__(self, service: WorkflowGenerationService) -> None:
        self._service = service

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        user_input = params.get("userInput")
        if not isinstance(user_input, str) or not user_input.strip():
            return _failure("Invalid user input provided", started)
        try:
            out = await self._service.classify_intent(user_input)
        except BackendError as e:
            return _failure(str(e), started, ErrorKind.LLM_ERROR)
        return ToolResult(
            success=True,
            data=out.value,
            metadata=ToolMetadata(
                execution_time=self._elapsed_ms(started),
                tokens_used=out.tokens_used or None,
                confidence=out.value.confidence,
            ),
        )


class ExtractEntitiesTool(BaseTool):
    name = "extract_entities"
    description = "Extract URLs, data types, output formats and AI tasks from user input"
    parameters = [
        ToolParameter("userInput", "string", "The user's natural language request", required=True),
        ToolParameter("intent", "object", "The classified intent from the previous step"),
    ]

    def __init__(self, service: WorkflowGenerationService) -> None:
        self._service = service

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        user_input = params.get("userInput")
        if not isinstance(user_input, str) or not user_input.strip():
            return _failure("Invalid user input provided", started)
        intent = coerce_model(params.get("intent"), IntentClassification)
        try:
            out = await self._service.extract_entities(user_input, intent)
        except BackendError as e:
            return _failure(str(e), started, ErrorKind.LLM_ERROR)
        return ToolResult(
            success=True,
            data=out.value,
            metadata=ToolMetadata(
                execution_time=self._elapsed_ms(started),
                tokens_used=out.tokens_used or None,
                confidence=entity_confidence(out.value),
            ),
        )


class GenerateWorkflowTool(BaseTool):
    name = "generate_workflow"
    description = "Generate a complete workflow structure from intent and entities"
    parameters = [
        ToolParameter("userInput", "string", "The original user request", required=True),
        ToolParameter("intent", "object", "The classified intent", required=True),
        ToolParameter("entities", "object", "The extracted entities", required=True),
    ]

    def __init__(self, service: WorkflowGenerationService) -> None:
        self._service = service

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        user_input = params.get("userInput")
        intent = coerce_model(params.get("intent"), IntentClassification)
        entities = coerce_model(params.get("entities"), EntityExtraction)
        if not isinstance(user_input, str) or intent is None or entities is None:
            return _failure("Missing required parameters: userInput, intent, or entities", started)
        try:
            out = await self._service.generate_workflow(user_input, intent, entities)
        except BackendError as e:
            return _failure(str(e), started, ErrorKind.LLM_ERROR)
        return ToolResult(
            success=True,
            data=out.value,
            metadata=ToolMetadata(
                execution_time=self._elapsed_ms(started),
                tokens_used=out.tokens_used or None,
                confidence=workflow_confidence(out.value),
            ),
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidateWorkflowTool(BaseTool):
    name = "validate_workflow"
    description = "Validate a workflow for correctness, completeness and best practices"
    parameters = [
        ToolParameter("workflow", "object", "The workflow structure to validate", required=True),
        ToolParameter("originalInput", "string", "The original user input for context", default=""),
    ]

    def __init__(self, validator: GraphValidator | None = None) -> None:
        self._validator = validator or GraphValidator()

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        workflow = coerce_model(params.get("workflow"), WorkflowStructure)
        if workflow is None:
            return _failure("Missing required parameter: workflow", started, ErrorKind.VALIDATION_ERROR)
        original = params.get("originalInput") or ""
        result = self._validator.validate_workflow(workflow, original)
        return ToolResult(
            success=True,
            data=result,
            metadata=ToolMetadata(
                execution_time=self._elapsed_ms(started),
                confidence=validation_confidence(result),
            ),
        )


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

DEFAULT_SUGGESTIONS: tuple[str, ...] = (
    "Start by adding a data input node to begin your workflow",
    "Consider what type of data you want to process",
    "Think about the end result you want to achieve",
    "Add an AI task node to process your data intelligently",
    "Include a data output node to export your results",
    "Describe the workflow in plain language to generate it automatically",
)

_CONTEXT_SUGGESTIONS: tuple[tuple[tuple[str, ...], tuple[str, str]], ...] = (
    (("job", "resume"), (
        "Consider adding a job matching node to find relevant opportunities",
        "Add a cover letter generation node for personalized applications",
    )),
    (("web", "scrape"), (
        "Add content filtering to extract only relevant information",
        "Consider adding error handling for failed web requests",
    )),
    (("data", "analysis"), (
        "Add data validation nodes to ensure data quality",
        "Consider adding data transformation nodes for better processing",
    )),
    (("search", "find"), (
        "Add ranking algorithms to improve search results",
        "Consider adding filters to narrow down search results",
    )),
)


def _structure_suggestions(wf: WorkflowStructure) -> list[str]:
    out: list[str] = []
    count = len(wf.nodes)
    has_input, has_output = wf.has_node_type("dataInput"), wf.has_node_type("dataOutput")
    if count == 0:
        out.append("Start by adding nodes to build your workflow")
    elif count == 1:
        out.append("Add more nodes to create a complete workflow")
    elif count > 8:
        out.append("Consider breaking this complex workflow into smaller, focused workflows")
    if not has_input:
        out.append("Add a data input node to start your workflow")
    if not has_output:
        out.append("Add a data output node to complete your workflow")
    if has_input and has_output and count == 2:
        out.append("Add processing nodes between input and output for more functionality")
    return out


def _node_type_suggestions(wf: WorkflowStructure) -> list[str]:
    out: list[str] = []
    types = {n.type for n in wf.nodes}
    has_scrape, has_llm = "webScraping" in types, "llmTask" in types
    has_embed, has_search = "embeddingGenerator" in types, "similaritySearch" in types

    if has_scrape and not has_llm:
        out.append("Consider adding an AI analysis node after web scraping to process the content")
    if has_llm and not has_scrape:
        inputs = wf.nodes_of_type("dataInput")
        if inputs and inputs[0].config.get("dataType") == "url":
            out.append("Add a web scraping node to extract content from URLs")
    if has_embed and not has_search:
        out.append("Add a similarity search node to find similar content using embeddings")
    if has_search and not has_embed:
        out.append("Add an embedding generator node to create vector representations of your data")
    if not has_llm and types & {"dataInput", "webScraping"}:
        out.append("Add an AI task node to intelligently process your data")
    return out


def _connection_suggestions(wf: WorkflowStructure) -> list[str]:
    out: list[str] = []
    connected = {e.source for e in wf.edges} | {e.target for e in wf.edges}
    if any(n.id not in connected for n in wf.nodes) and len(wf.nodes) > 1:
        out.append("Connect all nodes to create a complete data flow")
    if not wf.edges and len(wf.nodes) > 1:
        out.append("Connect your nodes to establish data flow between them")
    inputs = wf.nodes_of_type("dataInput")
    if len(inputs) == 1 and len(wf.nodes) > 3:
        fan_out = sum(1 for e in wf.edges if e.source == inputs[0].id)
        if fan_out > 1 and not wf.topology.parallel_execution:
            out.append("Consider using parallel processing for better performance")
    return out


def _configuration_suggestions(wf: WorkflowStructure) -> list[str]:
    out: list[str] = []
    for i, node in enumerate(wf.nodes, start=1):
        if not node.config:
            out.append(f"Configure node {i} ({node.label or node.id}) with appropriate settings")
        match node.type:
            case "llmTask" if not str(node.config.get("prompt") or "").strip():
                out.append(f"Add a prompt to LLM task node {i}")
            case "webScraping" if not str(node.config.get("url") or "").strip():
                out.append(f"Configure URL for web scraping node {i}")
            case "dataOutput" if not node.config.get("format"):
                out.append(f"Specify output format for data output node {i}")
    return out


def _performance_suggestions(wf: WorkflowStructure) -> list[str]:
    out: list[str] = []
    if wf.estimated_execution_time > 30_000:
        out.append("Consider optimizing workflow for faster execution")
    if len(wf.nodes_of_type("llmTask")) > 3:
        out.append("Consider combining multiple AI tasks or using more efficient models")
    if len(wf.nodes_of_type("webScraping")) > 2:
        out.append("Consider using batch processing for multiple web scraping operations")
    return out


def generate_suggestions(workflow: WorkflowStructure | None, context: str = "") -> list[str]:
    """Improvement hints for a workflow, de-duplicated and capped at MAX_SUGGESTIONS."""
    if workflow is None:
        return list(DEFAULT_SUGGESTIONS)

    suggestions = [
        *_structure_suggestions(workflow),
        *_node_type_suggestions(workflow),
        *_connection_suggestions(workflow),
        *_configuration_suggestions(workflow),
        *_performance_suggestions(workflow),
    ]
    lowered = context.lower()
    for keywords, hints in _CONTEXT_SUGGESTIONS:
        if any(kw in lowered for kw in keywords):
            suggestions.extend(hints)

    return list(dict.fromkeys(suggestions))[:MAX_SUGGESTIONS]


class GenerateSuggestionsTool(BaseTool):
    name = "generate_suggestions"
    description = "Suggest improvements for a workflow based on its structure and the request"
    parameters = [
        ToolParameter("workflow", "object", "The workflow structure to analyze"),
        ToolParameter("context", "string", "The original request for context", default=""),
    ]

    async def execute(self, params: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        workflow = coerce_model(params.get("workflow"), WorkflowStructure)
        context = params.get("context") or ""
        return ToolResult(
            success=True,
            data=generate_suggestions(workflow, context),
            metadata=ToolMetadata(execution_time=self._elapsed_ms(started), confidence=0.8),
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def make_default_registry(
    service: WorkflowGenerationService,
    cache: ResultCache,
    validator: GraphValidator | None = None,
) -> ToolRegistry:
    """Registry with all six tools, in pipeline order."""
    registry = ToolRegistry()
    registry.register(CacheLookupTool(cache))
    registry.register(ClassifyIntentTool(service))
    registry.register(ExtractEntitiesTool(service))
    registry.register(GenerateWorkflowTool(service))
    registry.register(ValidateWorkflowTool(validator))
    registry.register(GenerateSuggestionsTool())
    logger.debug("Default registry built: %s", registry.list())
    return registry
