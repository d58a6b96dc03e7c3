"""Workflow data model — WorkflowStructure, ParsedIntent and friends.

Wire format is camelCase JSON (what the generation backend emits and what the
HTTP API returns). In Python every field is snake_case; from_dict() is tolerant
and accepts either spelling, missing keys and wrongly-typed values.

WorkflowStructure is a general directed graph:
  - edges may reference node ids that do not exist (reported by the validator,
    never repaired here)
  - duplicate edges and self-loops are allowed
  - cycles are permitted in the model; the validator reports them
"""

from __future__ import annotations

import copy
import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, TypeVar

M = TypeVar("M")

NODE_TYPES: tuple[str, ...] = (
    "dataInput",
    "webScraping",
    "llmTask",
    "structuredOutput",
    "embeddingGenerator",
    "similaritySearch",
    "dataOutput",
    "database",
    "slack",
    "discord",
    "gmail",
)

TOPOLOGY_TYPES: tuple[str, ...] = ("linear", "fork-join", "branching")
COMPLEXITY_TIERS: tuple[str, ...] = ("low", "medium", "high")
INTENT_COMPLEXITY_LEVELS: tuple[str, ...] = ("SIMPLE", "MODERATE", "COMPLEX", "ENTERPRISE")


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _pick(data: dict, snake: str, camel: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def coerce_model(value: Any, model: type[M]) -> M | None:
    """Accept a model instance or its dict wire form; anything else is None."""
    if isinstance(value, model):
        return value
    if isinstance(value, dict):
        return model.from_dict(value)  # type: ignore[attr-defined]
    return None


def to_jsonable(obj: Any) -> Any:
    """Convert model objects (and containers of them) into plain JSON values."""
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {k: to_jsonable(v) for k, v in dataclasses.asdict(obj).items()}
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


# ---------------------------------------------------------------------------
# Graph elements
# ---------------------------------------------------------------------------


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class WorkflowNode:
    """One typed step in a workflow graph.

    config is free-form; the validator knows which keys each type requires.
    """

    id: str
    type: str
    label: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    position: Position | None = None

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> WorkflowNode:
        config = data.get("config")
        pos = data.get("position")
        position = None
        if isinstance(pos, dict):
            try:
                position = Position(float(pos.get("x", 0)), float(pos.get("y", 0)))
            except (TypeError, ValueError):
                position = None
        return cls(
            id=str(data.get("id") or f"node-{index}"),
            type=str(data.get("type") or ""),
            label=str(data.get("label") or ""),
            config=dict(config) if isinstance(config, dict) else {},
            position=position,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "config": copy.deepcopy(self.config),
        }
        if self.position is not None:
            out["position"] = {"x": self.position.x, "y": self.position.y}
        return out


@dataclass
class WorkflowEdge:
    id: str
    source: str
    target: str

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> WorkflowEdge:
        return cls(
            id=str(data.get("id") or f"edge-{index + 1}"),
            source=str(data.get("source") or ""),
            target=str(data.get("target") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target}


@dataclass
class Topology:
    type: str = "linear"
    description: str = ""
    parallel_execution: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> Topology:
        if not isinstance(data, dict):
            return cls()
        return cls(
            type=str(data.get("type") or "linear"),
            description=str(data.get("description") or ""),
            parallel_execution=bool(_pick(data, "parallel_execution", "parallelExecution", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "parallelExecution": self.parallel_execution,
        }


@dataclass
class WorkflowStructure:
    """The generated directed graph of typed nodes and edges."""

    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)
    topology: Topology = field(default_factory=Topology)
    complexity: str = "low"
    estimated_execution_time: int = 0
    id: str | None = None
    name: str | None = None

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def nodes_of_type(self, node_type: str) -> list[WorkflowNode]:
        return [n for n in self.nodes if n.type == node_type]

    def has_node_type(self, node_type: str) -> bool:
        return any(n.type == node_type for n in self.nodes)

    @classmethod
    def from_dict(cls, data: dict) -> WorkflowStructure:
        """Build from the camelCase wire format.

        Nodes without an id get "node-<index>", which matches the edge
        convention the backend prompt asks for.
        """
        raw_nodes = data.get("nodes") if isinstance(data.get("nodes"), list) else []
        raw_edges = data.get("edges") if isinstance(data.get("edges"), list) else []
        try:
            est = int(_pick(data, "estimated_execution_time", "estimatedExecutionTime", 0) or 0)
        except (TypeError, ValueError):
            est = 0
        return cls(
            nodes=[WorkflowNode.from_dict(n, i) for i, n in enumerate(raw_nodes) if isinstance(n, dict)],
            edges=[WorkflowEdge.from_dict(e, i) for i, e in enumerate(raw_edges) if isinstance(e, dict)],
            topology=Topology.from_dict(data.get("topology")),
            complexity=str(data.get("complexity") or "low"),
            estimated_execution_time=est,
            id=data.get("id"),
            name=data.get("name"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.id is not None:
            out["id"] = self.id
        if self.name is not None:
            out["name"] = self.name
        out.update({
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "topology": self.topology.to_dict(),
            "complexity": self.complexity,
            "estimatedExecutionTime": self.estimated_execution_time,
        })
        return out


# ---------------------------------------------------------------------------
# Entity extraction
# ---------------------------------------------------------------------------

# snake_case field → camelCase wire key
_ENTITY_KEYS: dict[str, str] = {
    "urls": "urls",
    "data_types": "dataTypes",
    "output_formats": "outputFormats",
    "ai_tasks": "aiTasks",
    "processing_steps": "processingSteps",
    "target_sites": "targetSites",
    "data_sources": "dataSources",
    "database_ops": "databaseOps",
    "slack_channels": "slackChannels",
    "discord_channels": "discordChannels",
    "email_recipients": "emailRecipients",
    "database_types": "databaseTypes",
    "notification_types": "notificationTypes",
    "email_types": "emailTypes",
}


@dataclass
class EntityExtraction:
    """Bag of ordered string lists pulled out of the request. Duplicates allowed."""

    urls: list[str] = field(default_factory=list)
    data_types: list[str] = field(default_factory=list)
    output_formats: list[str] = field(default_factory=list)
    ai_tasks: list[str] = field(default_factory=list)
    processing_steps: list[str] = field(default_factory=list)
    target_sites: list[str] = field(default_factory=list)
    data_sources: list[str] = field(default_factory=list)
    database_ops: list[str] = field(default_factory=list)
    slack_channels: list[str] = field(default_factory=list)
    discord_channels: list[str] = field(default_factory=list)
    email_recipients: list[str] = field(default_factory=list)
    database_types: list[str] = field(default_factory=list)
    notification_types: list[str] = field(default_factory=list)
    email_types: list[str] = field(default_factory=list)

    def total(self) -> int:
        return sum(len(getattr(self, name)) for name in _ENTITY_KEYS)

    @classmethod
    def from_dict(cls, data: dict) -> EntityExtraction:
        return cls(**{
            name: _str_list(_pick(data, name, camel, []))
            for name, camel in _ENTITY_KEYS.items()
        })

    def to_dict(self) -> dict[str, list[str]]:
        return {camel: list(getattr(self, name)) for name, camel in _ENTITY_KEYS.items()}


# ---------------------------------------------------------------------------
# Intent classification
# ---------------------------------------------------------------------------


@dataclass
class StepBreakdown:
    step: int
    operation: str
    description: str
    node_type: str

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> StepBreakdown:
        try:
            step = int(data.get("step", index + 1))
        except (TypeError, ValueError):
            step = index + 1
        return cls(
            step=step,
            operation=str(data.get("operation") or ""),
            description=str(data.get("description") or ""),
            node_type=str(_pick(data, "node_type", "nodeType", "") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "operation": self.operation,
            "description": self.description,
            "nodeType": self.node_type,
        }


@dataclass
class IntentClassification:
    intent: str
    confidence: float
    reasoning: str = ""
    complexity: str = "SIMPLE"
    step_breakdown: list[StepBreakdown] = field(default_factory=list)
    data_flow: str = ""
    integration_points: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> IntentClassification:
        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        steps = _pick(data, "step_breakdown", "stepBreakdown", [])
        return cls(
            intent=str(data.get("intent") or "GENERAL_PROCESSING"),
            confidence=min(max(confidence, 0.0), 1.0),
            reasoning=str(data.get("reasoning") or "Intent classified by AI"),
            complexity=str(data.get("complexity") or "SIMPLE"),
            step_breakdown=[
                StepBreakdown.from_dict(s, i)
                for i, s in enumerate(steps if isinstance(steps, list) else [])
                if isinstance(s, dict)
            ],
            data_flow=str(_pick(data, "data_flow", "dataFlow", "") or ""),
            integration_points=_str_list(_pick(data, "integration_points", "integrationPoints", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "complexity": self.complexity,
            "stepBreakdown": [s.to_dict() for s in self.step_breakdown],
            "dataFlow": self.data_flow,
            "integrationPoints": list(self.integration_points),
        }


# ---------------------------------------------------------------------------
# Pipeline outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedIntent:
    """Final product of a successful pipeline run. Cached; never mutated."""

    intent: str
    confidence: float
    entities: EntityExtraction
    workflow: WorkflowStructure
    reasoning: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ParsedIntent:
        workflow = _pick(data, "workflow", "workflowStructure", {})
        entities = data.get("entities")
        return cls(
            intent=str(data.get("intent") or ""),
            confidence=float(data.get("confidence", 0.0) or 0.0),
            entities=EntityExtraction.from_dict(entities if isinstance(entities, dict) else {}),
            workflow=WorkflowStructure.from_dict(workflow if isinstance(workflow, dict) else {}),
            reasoning=str(data.get("reasoning") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "confidence": self.confidence,
            "entities": self.entities.to_dict(),
            "workflowStructure": self.workflow.to_dict(),
            "reasoning": self.reasoning,
        }


@dataclass
class ValidationResult:
    is_valid: bool
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    complexity: str = "low"
    estimated_execution_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "issues": list(self.issues),
            "suggestions": list(self.suggestions),
            "complexity": self.complexity,
            "estimatedExecutionTime": self.estimated_execution_time,
        }
