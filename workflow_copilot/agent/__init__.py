"""Workflow co-pilot agent.

Entry points:
    AgentManager.build(settings, reasoning) → AgentManager
    WorkflowAgent(registry, cache, settings).process_request(text) → AgentResult

Tool layer:
    BaseTool, ToolResult, ToolParameter — tool contract and result envelope
    Cacheable                           — capability for cache-fronting tools
    ToolRegistry                        — name → tool lookup
    make_default_registry               — the six pipeline tools, wired

Support:
    ResultCache      — LRU + TTL cache of ParsedIntent results
    GraphValidator   — structural and policy checks on workflow graphs
    ErrorContext / PipelineError / ErrorKind — structured failure reporting
    ExecutionPlan / create_execution_plan   — dependency-aware tool plans
"""

from workflow_copilot.agent.cache import CacheStats, ResultCache, normalize_cache_key
from workflow_copilot.agent.errors import ErrorContext, ErrorKind, PipelineError
from workflow_copilot.agent.manager import AgentManager
from workflow_copilot.agent.models import (
    EntityExtraction,
    IntentClassification,
    ParsedIntent,
    ValidationResult,
    WorkflowEdge,
    WorkflowNode,
    WorkflowStructure,
)
from workflow_copilot.agent.orchestrator import AgentResult, WorkflowAgent
from workflow_copilot.agent.pipeline_tools import make_default_registry
from workflow_copilot.agent.registry import ToolRegistry
from workflow_copilot.agent.scheduler import ExecutionPlan, create_execution_plan
from workflow_copilot.agent.tools import BaseTool, Cacheable, ToolParameter, ToolResult
from workflow_copilot.agent.validator import GraphValidator

__all__ = [
    # Entry points
    "AgentManager",
    "WorkflowAgent",
    "AgentResult",
    # Tool layer
    "BaseTool",
    "Cacheable",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "make_default_registry",
    # Cache
    "ResultCache",
    "CacheStats",
    "normalize_cache_key",
    # Validation
    "GraphValidator",
    # Errors
    "ErrorContext",
    "ErrorKind",
    "PipelineError",
    # Planning
    "ExecutionPlan",
    "create_execution_plan",
    # Data model
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowStructure",
    "IntentClassification",
    "EntityExtraction",
    "ParsedIntent",
    "ValidationResult",
]
