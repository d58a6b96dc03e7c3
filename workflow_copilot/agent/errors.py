"""Error taxonomy and the immutable diagnostic attached to failed runs.

ErrorKind is a closed set:

  tool_registry_miss      requested tool name not registered
  tool_execution_failure  a registered tool reported failure, or raised
  llm_error               generation backend failed, timed out or returned
                          unusable content
  validation_error        generated workflow fails structural checks
  cache_error             cache backend failed (non-critical)
  unknown                 anything uncategorized

ErrorContext is created exactly once per failed pipeline run (at the point the
run is abandoned) and carries deep copies of the parameters and partial
results, so later mutation by the caller cannot change the record.
PipelineError is the exception that carries it out of the failing stage;
WorkflowAgent never lets it escape process_request().
"""

from __future__ import annotations

import asyncio
import copy
import enum
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from workflow_copilot.agent.models import to_jsonable
from workflow_copilot.reasoning import BackendError


class ErrorKind(str, enum.Enum):
    TOOL_REGISTRY_MISS = "tool_registry_miss"
    TOOL_EXECUTION_FAILURE = "tool_execution_failure"
    LLM_ERROR = "llm_error"
    VALIDATION_ERROR = "validation_error"
    CACHE_ERROR = "cache_error"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None, default: ErrorKind | None = None) -> ErrorKind:
        """Map a free string (e.g. ToolResult.error_kind) onto the taxonomy."""
        if value is None:
            return default or cls.TOOL_EXECUTION_FAILURE
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


_KIND_SUGGESTIONS: dict[ErrorKind, tuple[str, ...]] = {
    ErrorKind.TOOL_REGISTRY_MISS: (
        "Verify that the tool is registered before the pipeline runs",
        "Check the registry setup in the composition root",
    ),
    ErrorKind.TOOL_EXECUTION_FAILURE: (
        "Check the tool's input parameters",
        "Retry the request; transient tool failures often succeed on retry",
    ),
    ErrorKind.LLM_ERROR: (
        "Check the generation backend configuration (API key, base URL, proxy)",
        "Verify the generation backend is reachable and not rate limited",
        "Try again in a few seconds",
    ),
    ErrorKind.VALIDATION_ERROR: (
        "Review the workflow structure for missing nodes or configuration",
        "Rephrase the request with more detail about inputs and outputs",
    ),
    ErrorKind.CACHE_ERROR: (
        "Clear the result cache and retry",
    ),
    ErrorKind.UNKNOWN: (
        "Retry the request",
        "Check the service logs for details",
    ),
}

_STAGE_SUGGESTIONS: dict[str, str] = {
    "intent_classification": "Try describing the goal of the workflow more explicitly",
    "entity_extraction": "Include concrete details such as URLs, data types or output formats",
    "workflow_generation": "Try simplifying the request into fewer steps",
    "workflow_validation": "Inspect the generated workflow before executing it",
    "suggestion_generation": "Suggestions are optional; the workflow itself is still usable",
}


def build_suggestions(kind: ErrorKind, stage: str, tool_name: str | None = None) -> tuple[str, ...]:
    """Actionable hints for a diagnostic: per-kind first, then per-stage."""
    out = list(_KIND_SUGGESTIONS.get(kind, _KIND_SUGGESTIONS[ErrorKind.UNKNOWN]))
    if kind is ErrorKind.TOOL_REGISTRY_MISS and tool_name:
        out[0] = f"Verify that the tool '{tool_name}' is registered before the pipeline runs"
    stage_hint = _STAGE_SUGGESTIONS.get(stage)
    if stage_hint:
        out.append(stage_hint)
    return tuple(out)


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception raised inside a tool onto the taxonomy."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, BackendError)):
        return ErrorKind.LLM_ERROR
    if isinstance(exc, PipelineError):
        return exc.context.error_kind
    return ErrorKind.TOOL_EXECUTION_FAILURE


# ---------------------------------------------------------------------------
# ErrorContext
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ErrorContext:
    """Immutable diagnostic for a failed pipeline run.

    Build with ErrorContext.create(); the constructor does not copy.
    """

    stage: str
    error_kind: ErrorKind
    message: str
    session_id: str
    user_input: str
    tool_name: str | None = None
    input_parameters: dict[str, Any] = field(default_factory=dict)
    partial_results: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stack_trace: str | None = None
    suggestions: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        *,
        stage: str,
        error_kind: ErrorKind,
        message: str,
        session_id: str,
        user_input: str,
        tool_name: str | None = None,
        input_parameters: dict[str, Any] | None = None,
        partial_results: dict[str, Any] | None = None,
        exc: BaseException | None = None,
    ) -> ErrorContext:
        stack = None
        if exc is not None:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(
            stage=stage,
            error_kind=error_kind,
            message=message,
            session_id=session_id,
            user_input=user_input,
            tool_name=tool_name,
            input_parameters=copy.deepcopy(input_parameters or {}),
            partial_results=copy.deepcopy(partial_results or {}),
            stack_trace=stack,
            suggestions=build_suggestions(error_kind, stage, tool_name),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "toolName": self.tool_name,
            "errorType": self.error_kind.value,
            "message": self.message,
            "inputParameters": to_jsonable(self.input_parameters),
            "partialResults": to_jsonable(self.partial_results),
            "timestamp": self.timestamp.isoformat(),
            "sessionId": self.session_id,
            "userInput": self.user_input,
            "stackTrace": self.stack_trace,
            "suggestions": list(self.suggestions),
        }


class PipelineError(Exception):
    """A pipeline run was abandoned. Carries the ErrorContext diagnostic."""

    def __init__(self, context: ErrorContext) -> None:
        super().__init__(context.message)
        self.context = context

    @property
    def kind(self) -> ErrorKind:
        return self.context.error_kind
