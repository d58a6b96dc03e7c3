"""WorkflowAgent — the six-stage request pipeline.

Stages (tool names in brackets):

  1. cache probe              normalized-key lookup; a hit short-circuits the
                              run with confidence 0.9. Probe errors → miss.
  2. intent_classification    [classify_intent]       fatal on failure
  3. entity_extraction        [extract_entities]      fatal on failure
  4. workflow_generation      [generate_workflow]     fatal on failure; on
                              success the ParsedIntent is stored in the cache
  5. workflow_validation      [validate_workflow]     non-fatal; always listed
                              in tools_used
  6. suggestion_generation    [generate_suggestions]  non-fatal; listed only
                              on success

Stages 5 and 6 only depend on the workflow, so they run through the DAG
scheduler (concurrently when AgentSettings.parallel_execution is on).

Every tool call is bounded by stage_timeout_seconds; a timeout cancels the
in-flight call and becomes an llm_error. Parameters are checked with the
tool's validate() first.

Fatal failures raise PipelineError(ErrorContext) internally, carrying the
stage, tool, exact parameters and partial results so far. process_request()
always returns an AgentResult envelope; no exception escapes it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from workflow_copilot.agent.cache import ResultCache, normalize_cache_key
from workflow_copilot.agent.errors import (
    ErrorContext,
    ErrorKind,
    PipelineError,
    classify_exception,
)
from workflow_copilot.agent.metrics import StageTimer
from workflow_copilot.agent.models import (
    EntityExtraction,
    IntentClassification,
    ParsedIntent,
    WorkflowStructure,
    coerce_model,
    to_jsonable,
)
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.agent.scheduler import ExecutionPlan, create_execution_plan, run_plan
from workflow_copilot.agent.tools import ToolResult
from workflow_copilot.config import AgentSettings

logger = logging.getLogger("workflow_copilot.agent.orchestrator")

# Confidence weighting. Stages without a numeric confidence are left out of
# both numerator and denominator; this is a tunable, not a calibrated formula.
STAGE_WEIGHTS: dict[str, float] = {
    "intent": 0.3,
    "entities": 0.2,
    "workflow": 0.3,
    "validation": 0.2,
}
NEUTRAL_CONFIDENCE = 0.5
CACHE_HIT_CONFIDENCE = 0.9


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def aggregate_confidence(
    confidences: dict[str, float | None],
    weights: dict[str, float] | None = None,
) -> float:
    """Weighted average over stages that reported a confidence; 0.5 if none did."""
    weights = STAGE_WEIGHTS if weights is None else weights
    total = 0.0
    weight_sum = 0.0
    for stage, weight in weights.items():
        value = confidences.get(stage)
        if value is None:
            continue
        total += value * weight
        weight_sum += weight
    return total / weight_sum if weight_sum > 0 else NEUTRAL_CONFIDENCE


@dataclass
class AgentResult:
    """Envelope returned by process_request(), success or not."""

    success: bool
    tools_used: list[str]
    execution_time: float
    confidence: float
    data: dict[str, Any] | None = None
    error: str | None = None
    error_context: ErrorContext | None = None
    stage_metrics: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": to_jsonable(self.data),
            "error": self.error,
            "toolsUsed": list(self.tools_used),
            "executionTime": self.execution_time,
            "confidence": self.confidence,
            "errorContext": self.error_context.to_dict() if self.error_context else None,
            "stageMetrics": list(self.stage_metrics),
        }


class _StageFailure(Exception):
    """A tool call failed; the caller decides whether that is fatal."""

    def __init__(self, kind: ErrorKind, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause


@dataclass
class _Run:
    """Mutable bookkeeping for one process_request() call."""

    user_input: str
    stage: str = "cache_probe"
    tools_used: list[str] = field(default_factory=list)
    partial: dict[str, Any] = field(default_factory=dict)
    stage_metrics: list[dict[str, Any]] = field(default_factory=list)


_OPTIONAL_STAGES: dict[str, str] = {
    "validate_workflow": "workflow_validation",
    "generate_suggestions": "suggestion_generation",
}


class WorkflowAgent:
    """Orchestrates the pipeline tools for one session.

    registry and cache are injected; construct defaults at the composition
    root (AgentManager, the API lifespan or the CLI), never here.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        cache: ResultCache,
        settings: AgentSettings | None = None,
        session_id: str | None = None,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._settings = settings or AgentSettings()
        self.session_id = session_id or new_session_id()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def cache(self) -> ResultCache:
        return self._cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_request(self, user_input: str) -> AgentResult:
        started = time.perf_counter()
        run = _Run(user_input=user_input)
        try:
            return await self._run_pipeline(run, started)
        except PipelineError as e:
            ctx = e.context
        except Exception as e:
            logger.exception("[PIPELINE] Unexpected error during %s", run.stage)
            ctx = self._context(run, None, {}, ErrorKind.UNKNOWN, str(e) or type(e).__name__, e)

        logger.warning(
            "[PIPELINE] Failed at %s (%s): %s", ctx.stage, ctx.error_kind.value, ctx.message
        )
        return AgentResult(
            success=False,
            error=ctx.message,
            tools_used=run.tools_used,
            execution_time=self._elapsed_ms(started),
            confidence=0.0,
            error_context=ctx,
            stage_metrics=run.stage_metrics,
        )

    def create_execution_plan(self, tools: list[str]) -> ExecutionPlan:
        return create_execution_plan(tools, parallel=self._settings.parallel_execution)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(self, run: _Run, started: float) -> AgentResult:
        user_input = run.user_input
        key = normalize_cache_key(user_input)

        cached = await self._probe_cache(run, key)
        if cached is not None:
            logger.info("[CACHE] Hit for %r", key[:80])
            return AgentResult(
                success=True,
                data={"parsedIntent": cached, "validation": None, "suggestions": []},
                tools_used=["cache_lookup"],
                execution_time=self._elapsed_ms(started),
                confidence=CACHE_HIT_CONFIDENCE,
                stage_metrics=run.stage_metrics,
            )
        run.tools_used.append("cache_lookup")

        intent_params = {"userInput": user_input}
        intent_res = await self._execute_tool(
            run, "intent_classification", "classify_intent", intent_params
        )
        intent = self._require(
            run, "classify_intent", intent_params, intent_res, IntentClassification
        )
        run.partial["intent"] = intent
        run.tools_used.append("classify_intent")

        entities_params = {"userInput": user_input, "intent": intent}
        entities_res = await self._execute_tool(
            run, "entity_extraction", "extract_entities", entities_params
        )
        entities = self._require(
            run, "extract_entities", entities_params, entities_res, EntityExtraction
        )
        run.partial["entities"] = entities
        run.tools_used.append("extract_entities")

        workflow_params = {"userInput": user_input, "intent": intent, "entities": entities}
        workflow_res = await self._execute_tool(
            run, "workflow_generation", "generate_workflow", workflow_params
        )
        workflow = self._require(
            run, "generate_workflow", workflow_params, workflow_res, WorkflowStructure
        )
        run.partial["workflow"] = workflow
        run.tools_used.append("generate_workflow")

        parsed = ParsedIntent(
            intent=intent.intent,
            confidence=intent.confidence,
            entities=entities,
            workflow=workflow,
            reasoning=intent.reasoning,
        )
        self._store_in_cache(key, parsed)

        optional_params = {
            "validate_workflow": {"workflow": workflow, "originalInput": user_input},
            "generate_suggestions": {"workflow": workflow, "context": user_input},
        }

        async def run_optional(name: str) -> ToolResult | None:
            return await self._execute_optional(run, _OPTIONAL_STAGES[name], name, optional_params[name])

        plan = self.create_execution_plan(list(optional_params))
        optional = await run_plan(plan, run_optional)

        validation_res = optional.get("validate_workflow")
        run.tools_used.append("validate_workflow")
        suggestions_res = optional.get("generate_suggestions")
        if suggestions_res is not None:
            run.tools_used.append("generate_suggestions")

        confidence = aggregate_confidence({
            "intent": intent_res.metadata.confidence,
            "entities": entities_res.metadata.confidence,
            "workflow": workflow_res.metadata.confidence,
            "validation": validation_res.metadata.confidence if validation_res else None,
        })
        logger.info(
            "[PIPELINE] Completed: intent=%s nodes=%d confidence=%.2f",
            parsed.intent, len(workflow.nodes), confidence,
        )
        return AgentResult(
            success=True,
            data={
                "parsedIntent": parsed,
                "validation": validation_res.data if validation_res else None,
                "suggestions": list(suggestions_res.data or []) if suggestions_res else [],
            },
            tools_used=run.tools_used,
            execution_time=self._elapsed_ms(started),
            confidence=confidence,
            stage_metrics=run.stage_metrics,
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _probe_cache(self, run: _Run, key: str) -> ParsedIntent | None:
        async with StageTimer("cache_probe", "cache_lookup") as timer:
            try:
                value = self._cache.lookup(key)
            except Exception as e:
                logger.warning("[CACHE] Probe failed, treating as miss: %s", e)
                value = None
            if value is not None and not isinstance(value, ParsedIntent):
                logger.warning("[CACHE] Ignoring unexpected cached type %s", type(value).__name__)
                value = None
            timer.cache_hit = value is not None
        run.stage_metrics.append(timer.to_dict())
        return value

    def _store_in_cache(self, key: str, parsed: ParsedIntent) -> None:
        try:
            self._cache.store(key, parsed, self._settings.cache_ttl_seconds)
        except Exception as e:
            logger.warning("[CACHE] Store failed (non-fatal): %s", e)

    # ------------------------------------------------------------------
    # Tool invocation
    # ------------------------------------------------------------------

    async def _invoke(self, run: _Run, stage: str, name: str, params: dict[str, Any]) -> ToolResult:
        """Look up, validate and run one tool under the stage timeout.

        Raises:
            _StageFailure: for every failure mode (missing tool, bad params,
                timeout, exception, success=False).
        """
        tool = self._registry.get(name)
        if tool is None:
            raise _StageFailure(ErrorKind.TOOL_REGISTRY_MISS, f"Tool '{name}' is not registered")

        try:
            check = tool.validate(params)
        except Exception as e:
            raise _StageFailure(
                ErrorKind.TOOL_EXECUTION_FAILURE,
                f"{name} parameter check raised {type(e).__name__}: {e}",
                e,
            ) from e
        if not check.is_valid:
            raise _StageFailure(
                ErrorKind.TOOL_EXECUTION_FAILURE,
                f"Invalid parameters for {name}: {'; '.join(check.errors)}",
            )

        timeout = self._settings.stage_timeout_seconds
        timer = StageTimer(stage, name)
        try:
            async with timer:
                result = await asyncio.wait_for(tool.execute(params), timeout=timeout)
                timer.success = result.success
                timer.tokens_used = result.metadata.tokens_used or 0
        except asyncio.TimeoutError as e:
            raise _StageFailure(ErrorKind.LLM_ERROR, f"{name} timed out after {timeout:g}s", e) from e
        except Exception as e:
            raise _StageFailure(
                classify_exception(e), f"{name} raised {type(e).__name__}: {e}", e
            ) from e
        finally:
            run.stage_metrics.append(timer.to_dict())

        if not result.success:
            raise _StageFailure(
                ErrorKind.parse(result.error_kind), result.error or f"{name} reported failure"
            )
        return result

    async def _execute_tool(self, run: _Run, stage: str, name: str, params: dict[str, Any]) -> ToolResult:
        """Fatal stage: any failure becomes a PipelineError."""
        run.stage = stage
        logger.debug("[%s] Invoking %s", stage, name)
        try:
            return await self._invoke(run, stage, name, params)
        except _StageFailure as f:
            raise PipelineError(self._context(run, name, params, f.kind, f.message, f.cause)) from f

    async def _execute_optional(
        self, run: _Run, stage: str, name: str, params: dict[str, Any]
    ) -> ToolResult | None:
        """Non-fatal stage: failures are logged and reported as None."""
        run.stage = stage
        try:
            return await self._invoke(run, stage, name, params)
        except _StageFailure as f:
            logger.warning("[%s] %s failed (non-fatal, %s): %s", stage, name, f.kind.value, f.message)
            return None

    def _require(
        self, run: _Run, name: str, params: dict[str, Any], result: ToolResult, model: type
    ) -> Any:
        value = coerce_model(result.data, model)
        if value is None:
            raise PipelineError(self._context(
                run, name, params, ErrorKind.TOOL_EXECUTION_FAILURE,
                f"{name} returned no {model.__name__}",
            ))
        return value

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _context(
        self,
        run: _Run,
        tool_name: str | None,
        params: dict[str, Any],
        kind: ErrorKind,
        message: str,
        exc: BaseException | None = None,
    ) -> ErrorContext:
        return ErrorContext.create(
            stage=run.stage,
            error_kind=kind,
            message=message,
            session_id=self.session_id,
            user_input=run.user_input,
            tool_name=tool_name,
            input_parameters=params,
            partial_results=run.partial,
            exc=exc,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)

    def __repr__(self) -> str:
        return f"WorkflowAgent(session_id={self.session_id!r}, tools={self._registry.list()!r})"
