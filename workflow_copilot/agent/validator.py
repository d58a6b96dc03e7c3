"""GraphValidator — structural and policy checks over a WorkflowStructure.

Checks, in report order:
  1. edge references    every edge endpoint must name an existing node
  2. connectivity       with more than one node, every node must be an edge
                        endpoint (one issue per unconnected node)
  3. cycles             iterative three-colour DFS from every unvisited node;
                        the first cycle per DFS root is reported
  4. node config        non-empty label and config, plus per-type required keys
                        (one issue and one suggestion per missing key)
  5. global policy      input/output presence, node-count and estimated-time
                        thresholds, LLM-before-scraping ordering

is_valid is True iff no issues were found. Suggestions alone never make a
workflow invalid. The input workflow is never mutated.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from workflow_copilot.agent.models import ValidationResult, WorkflowNode, WorkflowStructure

logger = logging.getLogger("workflow_copilot.agent.validator")

# Estimated runtime per node type (ms); unknown types cost DEFAULT_DURATION_MS.
DURATION_MS: dict[str, int] = {
    "dataInput": 0,
    "webScraping": 5000,
    "llmTask": 3000,
    "structuredOutput": 2000,
    "embeddingGenerator": 4000,
    "similaritySearch": 3000,
    "dataOutput": 0,
}
DEFAULT_DURATION_MS = 1000

MAX_NODES = 10
MAX_EXECUTION_MS = 60_000


@dataclass(frozen=True)
class _RequiredKey:
    keys: tuple[str, ...]  # any one of these satisfies the check
    issue: str             # formatted with n=node number
    suggestion: str


REQUIRED_CONFIG: dict[str, tuple[_RequiredKey, ...]] = {
    "dataInput": (
        _RequiredKey(("dataType",), "Data input node {n} missing data type",
                     "Specify data type for input node {n}"),
    ),
    "webScraping": (
        _RequiredKey(("url",), "Web scraping node {n} missing URL",
                     "Configure URL (or a {{{{variable}}}} placeholder) for web scraping node {n}"),
    ),
    "llmTask": (
        _RequiredKey(("prompt",), "LLM task node {n} missing prompt",
                     "Add a prompt for LLM task node {n}"),
    ),
    "dataOutput": (
        _RequiredKey(("format",), "Data output node {n} missing output format",
                     "Specify output format for node {n}"),
    ),
    "structuredOutput": (
        _RequiredKey(("schema",), "Structured output node {n} missing JSON schema",
                     "Configure a JSON schema for structured output node {n}"),
    ),
    "embeddingGenerator": (
        _RequiredKey(("model",), "Embedding node {n} missing model",
                     "Choose an embedding model for node {n}"),
    ),
    "similaritySearch": (
        _RequiredKey(("index", "namespace"), "Similarity search node {n} missing vector index",
                     "Configure an index or namespace for similarity search node {n}"),
    ),
    "database": (
        _RequiredKey(("operation",), "Database node {n} missing operation",
                     "Choose a database operation (query, insert, update, delete) for node {n}"),
    ),
    "slack": (
        _RequiredKey(("channel",), "Slack node {n} missing channel",
                     "Configure a Slack channel for node {n}"),
    ),
    "discord": (
        _RequiredKey(("channel",), "Discord node {n} missing channel",
                     "Configure a Discord channel for node {n}"),
    ),
    "gmail": (
        _RequiredKey(("to",), "Gmail node {n} missing recipient",
                     "Configure a recipient ('to') for Gmail node {n}"),
    ),
}

_WHITE, _GRAY, _BLACK = 0, 1, 2


# ---------------------------------------------------------------------------
# Derived metrics (also used by the generators)
# ---------------------------------------------------------------------------


def estimate_execution_time(workflow: WorkflowStructure) -> int:
    return sum(DURATION_MS.get(n.type, DEFAULT_DURATION_MS) for n in workflow.nodes)


def determine_complexity(workflow: WorkflowStructure) -> str:
    nodes, edges = len(workflow.nodes), len(workflow.edges)
    if nodes <= 3 and edges <= 2 and not workflow.topology.parallel_execution:
        return "low"
    if nodes <= 6 and edges <= 5:
        return "medium"
    return "high"


def find_cycles(workflow: WorkflowStructure) -> list[list[str]]:
    """Return one cycle path per DFS root, e.g. [["A", "B", "C", "A"]].

    O(V + E): nodes are coloured white (unseen), gray (on the current path)
    and black (subtree finished). Reaching a gray node closes a cycle.
    Edges touching unknown node ids are ignored here.
    """
    adjacency: dict[str, list[str]] = {}
    for node in workflow.nodes:
        adjacency.setdefault(node.id, [])
    for edge in workflow.edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)

    color = dict.fromkeys(adjacency, _WHITE)
    cycles: list[list[str]] = []

    for root in adjacency:
        if color[root] != _WHITE:
            continue
        found = False
        color[root] = _GRAY
        path = [root]
        stack = [iter(adjacency[root])]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                color[path.pop()] = _BLACK
                stack.pop()
                continue
            if color[nxt] == _WHITE:
                color[nxt] = _GRAY
                path.append(nxt)
                stack.append(iter(adjacency[nxt]))
            elif color[nxt] == _GRAY and not found:
                start = path.index(nxt)
                cycles.append(path[start:] + [nxt])
                found = True
    return cycles


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


def _node_ref(node: WorkflowNode, index: int) -> str:
    return f"Node {index + 1} ({node.label or node.id})"


def _has_value(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


class GraphValidator:
    """Stateless workflow validator.

    Thresholds are constructor arguments so callers can tighten policy without
    subclassing.
    """

    def __init__(self, max_nodes: int = MAX_NODES, max_execution_ms: int = MAX_EXECUTION_MS) -> None:
        self.max_nodes = max_nodes
        self.max_execution_ms = max_execution_ms

    def validate_workflow(self, workflow: WorkflowStructure, original_input: str = "") -> ValidationResult:
        issues: list[str] = []
        suggestions: list[str] = []

        self._check_edge_references(workflow, issues, suggestions)
        self._check_connectivity(workflow, issues, suggestions)
        self._check_cycles(workflow, issues, suggestions)
        self._check_nodes(workflow, issues, suggestions)
        self._check_policy(workflow, issues, suggestions)

        logger.debug(
            "[VALIDATE] %d node(s), %d issue(s) for request %r",
            len(workflow.nodes), len(issues), original_input[:80],
        )
        return ValidationResult(
            is_valid=not issues,
            issues=issues,
            suggestions=suggestions,
            complexity=determine_complexity(workflow),
            estimated_execution_time=estimate_execution_time(workflow),
        )

    # --- structure ------------------------------------------------------

    def _check_edge_references(self, wf: WorkflowStructure, issues: list[str], suggestions: list[str]) -> None:
        known = set(wf.node_ids())
        dangling = False
        for edge in wf.edges:
            if edge.source not in known:
                issues.append(f"Edge {edge.id} references non-existent source node: {edge.source}")
                dangling = True
            if edge.target not in known:
                issues.append(f"Edge {edge.id} references non-existent target node: {edge.target}")
                dangling = True
        if dangling:
            suggestions.append("Remove or re-target edges that point at missing nodes")

    def _check_connectivity(self, wf: WorkflowStructure, issues: list[str], suggestions: list[str]) -> None:
        if len(wf.nodes) <= 1:
            return
        connected = {e.source for e in wf.edges} | {e.target for e in wf.edges}
        for i, node in enumerate(wf.nodes):
            if node.id not in connected:
                issues.append(f"{_node_ref(node, i)} is not connected")
                suggestions.append(f"Connect node {i + 1} to other nodes in the workflow")

    def _check_cycles(self, wf: WorkflowStructure, issues: list[str], suggestions: list[str]) -> None:
        cycles = find_cycles(wf)
        for cycle in cycles:
            issues.append(f"Circular dependency detected: {' -> '.join(cycle)}")
        if cycles:
            suggestions.append("Remove circular dependencies in the workflow")

    # --- per node -------------------------------------------------------

    def _check_nodes(self, wf: WorkflowStructure, issues: list[str], suggestions: list[str]) -> None:
        for i, node in enumerate(wf.nodes):
            n = i + 1
            if not node.label.strip():
                issues.append(f"Node {n} has an empty label")
                suggestions.append(f"Give node {n} a descriptive label")
            if not node.config:
                issues.append(f"Node {n} ({node.type}) has no configuration")
                suggestions.append(f"Configure node {n} with appropriate settings")

            for rule in REQUIRED_CONFIG.get(node.type, ()):
                if not any(_has_value(node.config.get(k)) for k in rule.keys):
                    issues.append(rule.issue.format(n=n))
                    suggestions.append(rule.suggestion.format(n=n))

    # --- global policy --------------------------------------------------

    def _check_policy(self, wf: WorkflowStructure, issues: list[str], suggestions: list[str]) -> None:
        if not wf.has_node_type("dataInput"):
            issues.append("Workflow missing input node")
            suggestions.append("Add a data input node to start the workflow")
        if not wf.has_node_type("dataOutput"):
            issues.append("Workflow missing output node")
            suggestions.append("Add a data output node to complete the workflow")

        if len(wf.nodes) > self.max_nodes:
            issues.append("Workflow has many nodes which may be complex to maintain")
            suggestions.append("Consider breaking down the workflow into smaller, focused workflows")

        if estimate_execution_time(wf) > self.max_execution_ms:
            issues.append("Workflow execution time is very long")
            suggestions.append("Consider optimizing the workflow for better performance")

        scrape_positions = [i for i, n in enumerate(wf.nodes) if n.type == "webScraping"]
        llm_positions = [i for i, n in enumerate(wf.nodes) if n.type == "llmTask"]
        if scrape_positions and llm_positions:
            first_scrape = min(scrape_positions)
            if any(pos < first_scrape for pos in llm_positions):
                issues.append("AI analysis nodes should come after web scraping nodes")
                suggestions.append("Reorder nodes so that data extraction happens before analysis")

        if len(wf.nodes) > 1 and not any("{{" in json.dumps(n.config, default=str) for n in wf.nodes):
            suggestions.append("Consider using variable substitution to pass data between nodes")
