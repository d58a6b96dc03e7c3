"""AgentManager — session-scoped facade over WorkflowAgent.

This is the composition root used by the HTTP API and the CLI: build() wires
backend → generation service → cache → registry → agent, and the manager
keeps a per-session execution history on top.

Cache maintenance goes through the registered "cache_lookup" tool, and only
when that tool implements the Cacheable capability.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from workflow_copilot.agent.cache import ResultCache
from workflow_copilot.agent.errors import ErrorContext, ErrorKind, PipelineError
from workflow_copilot.agent.generation import WorkflowGenerationService
from workflow_copilot.agent.models import ParsedIntent, WorkflowStructure
from workflow_copilot.agent.orchestrator import AgentResult, WorkflowAgent, new_session_id
from workflow_copilot.agent.pipeline_tools import make_default_registry
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.agent.tools import Cacheable
from workflow_copilot.config import AgentSettings
from workflow_copilot.reasoning import (
    GenerationBackend,
    ReasoningSettings,
    create_backend,
)

logger = logging.getLogger("workflow_copilot.agent.manager")

SUGGESTIONS_UNAVAILABLE = "Unable to generate suggestions at this time"
_DEFAULT_SUGGESTIONS_PROMPT = "Generate suggestions for current workflow"


@dataclass
class HistoryEntry:
    """One processed request in the session history."""

    input: str
    success: bool
    tools_used: list[str]
    execution_time: float
    confidence: float
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "input": self.input,
            "success": self.success,
            "error": self.error,
            "toolsUsed": list(self.tools_used),
            "executionTime": self.execution_time,
            "confidence": self.confidence,
        }


class AgentManager:
    def __init__(
        self,
        registry: ToolRegistry,
        cache: ResultCache,
        settings: AgentSettings | None = None,
        backend: GenerationBackend | None = None,
        session_id: str | None = None,
    ) -> None:
        self.settings = settings or AgentSettings()
        self.session_id = session_id or new_session_id()
        self.registry = registry
        self.cache = cache
        self.agent = WorkflowAgent(registry, cache, self.settings, session_id=self.session_id)
        self.history: list[HistoryEntry] = []
        self._backend = backend

    @classmethod
    def build(
        cls,
        settings: AgentSettings | None = None,
        reasoning: ReasoningSettings | None = None,
        backend: GenerationBackend | None = None,
    ) -> AgentManager:
        """Wire the default pipeline.

        An explicit backend wins; otherwise one is created from reasoning
        settings (None when no credentials are configured).
        """
        settings = settings or AgentSettings.from_env()
        if backend is None:
            backend = create_backend(reasoning or ReasoningSettings.from_env())
        cache = ResultCache(settings.cache_max_size, settings.cache_ttl_seconds)
        service = WorkflowGenerationService(backend, settings)
        registry = make_default_registry(service, cache)
        manager = cls(registry, cache, settings, backend=backend)
        logger.info(
            "[MANAGER] Session %s ready (backend=%s, tools=%d)",
            manager.session_id,
            manager.backend_name,
            len(registry),
        )
        return manager

    @property
    def backend_name(self) -> str:
        return self._backend.model_id if self._backend is not None else "heuristic"

    async def aclose(self) -> None:
        if self._backend is not None:
            await self._backend.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def process_workflow_request(self, user_input: str) -> AgentResult:
        result = await self.agent.process_request(user_input)
        self.history.append(HistoryEntry(
            input=user_input,
            success=result.success,
            error=result.error,
            tools_used=list(result.tools_used),
            execution_time=result.execution_time,
            confidence=result.confidence,
        ))
        return result

    async def generate_workflow_from_description(self, description: str) -> ParsedIntent:
        """Run the pipeline and return only the ParsedIntent.

        Raises:
            PipelineError: the pipeline failed; .context says where and why.
        """
        result = await self.process_workflow_request(description)
        if not result.success:
            raise PipelineError(result.error_context or self._context(
                "workflow_generation", ErrorKind.UNKNOWN,
                result.error or "Failed to generate workflow", description,
            ))
        return result.data["parsedIntent"]

    async def get_suggestions(
        self,
        context: str | None = None,
        workflow: WorkflowStructure | dict | None = None,
    ) -> list[str]:
        """Suggestions for an existing workflow, or for a fresh pipeline run on context."""
        if workflow is not None:
            tool = self.registry.get("generate_suggestions")
            if tool is None:
                return [SUGGESTIONS_UNAVAILABLE]
            res = await tool.execute({"workflow": workflow, "context": context or ""})
            return list(res.data or []) if res.success else [SUGGESTIONS_UNAVAILABLE]

        result = await self.process_workflow_request(context or _DEFAULT_SUGGESTIONS_PROMPT)
        if not result.success:
            return [SUGGESTIONS_UNAVAILABLE]
        return list(result.data.get("suggestions") or [])

    async def validate_workflow(
        self,
        workflow: WorkflowStructure | dict,
        original_input: str = "",
    ) -> dict[str, Any]:
        """Validate a workflow graph outside the pipeline.

        Raises:
            PipelineError: the validate_workflow tool is missing or failed.
        """
        params = {"workflow": workflow, "originalInput": original_input}
        tool = self.registry.get("validate_workflow")
        if tool is None:
            raise PipelineError(self._context(
                "workflow_validation", ErrorKind.TOOL_REGISTRY_MISS,
                "Validation tool not available", original_input, params,
            ))
        result = await tool.execute(params)
        if not result.success:
            raise PipelineError(self._context(
                "workflow_validation",
                ErrorKind.parse(result.error_kind, ErrorKind.VALIDATION_ERROR),
                result.error or "Validation failed",
                original_input,
                params,
            ))
        return result.data.to_dict() if hasattr(result.data, "to_dict") else result.data

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def available_tools(self) -> list[str]:
        return self.registry.list()

    def tool_info(self, name: str) -> dict[str, Any] | None:
        tool = self.registry.get(name)
        if tool is None:
            return None
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                    "default": p.default,
                }
                for p in tool.parameters
            ],
        }

    def _cache_tool(self) -> Cacheable | None:
        tool = self.registry.get("cache_lookup")
        return tool if isinstance(tool, Cacheable) else None

    def clear_cache(self) -> int:
        """Purge expired cache entries; returns the number removed."""
        tool = self._cache_tool()
        if tool is None:
            return 0
        removed = tool.clear_expired()
        logger.info("[MANAGER] Cleared %d expired cache entries", removed)
        return removed

    def cache_stats(self) -> dict[str, Any]:
        tool = self._cache_tool()
        if tool is None:
            return {"size": 0, "hitRate": 0}
        return tool.stats().to_dict()

    def session_info(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "toolsAvailable": len(self.registry),
            "requestsProcessed": len(self.history),
            "cacheStats": self.cache_stats(),
        }

    def _context(
        self,
        stage: str,
        kind: ErrorKind,
        message: str,
        user_input: str,
        params: dict[str, Any] | None = None,
    ) -> ErrorContext:
        return ErrorContext.create(
            stage=stage,
            error_kind=kind,
            message=message,
            session_id=self.session_id,
            user_input=user_input,
            tool_name="validate_workflow" if stage == "workflow_validation" else None,
            input_parameters=params,
        )
