"""Tool contract — the interface every pipeline stage implements.

A tool is a named, independently invocable stage with a declared parameter
schema:

    name          unique registry key ("classify_intent")
    description   one-line summary for introspection
    parameters    list[ToolParameter]
    validate()    ToolValidationResult (default: required + type checks)
    execute()     async → ToolResult

Failure policy:
  - Expected failures (bad input, backend down, unusable output) are encoded
    in the ToolResult envelope: success=False, error, optional error_kind.
  - Unexpected errors propagate as exceptions; WorkflowAgent converts them into
    an ErrorContext diagnostic.

Cacheable is an explicit capability: tools that expose cache operations
subclass it, and callers check isinstance(tool, Cacheable) rather than
probing for method names.
"""

from __future__ import annotations

import dataclasses
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

from workflow_copilot.agent.models import to_jsonable

ParameterType = Literal["string", "number", "boolean", "object", "array"]


# ---------------------------------------------------------------------------
# Envelope types
# ---------------------------------------------------------------------------


@dataclass
class ToolParameter:
    name: str
    type: ParameterType
    description: str
    required: bool = False
    default: Any = None


@dataclass
class ToolMetadata:
    """Execution metadata attached to every ToolResult.

    execution_time: wall-clock milliseconds spent inside execute().
    tokens_used:    backend tokens consumed, when the tool called a backend.
    confidence:     the tool's own estimate in [0, 1]; None when it has none.
    """

    execution_time: float = 0.0
    tokens_used: int | None = None
    confidence: float | None = None


@dataclass
class ToolResult:
    """Normalized envelope for every tool execution.

    success:    True if the tool completed its job.
    data:       Tool payload (model objects, lists, dicts). None on failure.
    error:      Human-readable failure message when success=False.
    metadata:   ToolMetadata.
    error_kind: Optional ErrorKind value hinting how the orchestrator should
                classify the failure ("llm_error", "validation_error", ...).
                None means "tool_execution_failure".
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: ToolMetadata = field(default_factory=ToolMetadata)
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "data": to_jsonable(self.data),
            "metadata": {
                "executionTime": self.metadata.execution_time,
                "tokensUsed": self.metadata.tokens_used,
                "confidence": self.metadata.confidence,
            },
        }
        if self.error is not None:
            out["error"] = self.error
        if self.error_kind is not None:
            out["errorKind"] = self.error_kind
        return out


@dataclass
class ToolValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _matches_type(value: Any, expected: str) -> bool:
    match expected:
        case "string":
            return isinstance(value, str)
        case "number":
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        case "boolean":
            return isinstance(value, bool)
        case "array":
            return isinstance(value, (list, tuple))
        case "object":
            # model dataclasses travel between stages as-is
            return isinstance(value, dict) or (
                dataclasses.is_dataclass(value) and not isinstance(value, type)
            )
        case _:
            return True


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class BaseTool(ABC):
    """Abstract pipeline stage.

    Subclasses set name / description / parameters as class attributes and
    implement execute().
    """

    name: str = ""
    description: str = ""
    parameters: list[ToolParameter] = []

    def validate(self, params: dict[str, Any]) -> ToolValidationResult:
        """Check required parameters are present and typed as declared.

        Unknown parameters are reported as warnings, never errors.
        """
        errors: list[str] = []
        warnings: list[str] = []
        declared = {p.name for p in self.parameters}

        for param in self.parameters:
            value = params.get(param.name)
            if value is None:
                if param.required:
                    errors.append(f"Required parameter '{param.name}' is missing")
                continue
            if not _matches_type(value, param.type):
                errors.append(
                    f"Parameter '{param.name}' should be of type {param.type}, "
                    f"got {type(value).__name__}"
                )

        for key in params:
            if key not in declared:
                warnings.append(f"Unknown parameter '{key}' will be ignored")

        return ToolValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> ToolResult:
        ...

    # --- helpers for subclasses -------------------------------------------

    def apply_defaults(self, params: dict[str, Any]) -> dict[str, Any]:
        merged = dict(params)
        for param in self.parameters:
            if merged.get(param.name) is None and param.default is not None:
                merged[param.name] = param.default
        return merged

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)

    def definition(self) -> dict[str, Any]:
        """JSON-schema style tool definition for introspection endpoints."""
        properties: dict[str, Any] = {}
        for p in self.parameters:
            prop: dict[str, Any] = {"type": p.type, "description": p.description}
            if p.default is not None:
                prop["default"] = p.default
            properties[p.name] = prop
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": [p.name for p in self.parameters if p.required],
            },
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class Cacheable(ABC):
    """Capability for tools that front a result cache."""

    @abstractmethod
    def lookup(self, key: str) -> Any:
        """Return the cached value for key, or None on a miss."""

    @abstractmethod
    def store(self, key: str, value: Any, ttl: float | None = None) -> None:
        ...

    @abstractmethod
    def clear_expired(self) -> int:
        """Purge expired entries and return how many were removed."""

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def stats(self) -> Any:
        ...
