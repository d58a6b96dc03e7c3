"""WorkflowGenerationService — backend prompts with explicit heuristic fallback.

Each operation follows the same path:

  backend configured?  no  → heuristics
        │ yes
  backend.generate()   BackendError → heuristics (or re-raise when
        │                              fallback_on_backend_error is off)
  parse_llm_json() + shape check
        ├─ StructuredOutput   → model object (source="backend")
        └─ UnstructuredOutput → heuristics  (source="heuristic")

The Unstructured branch is handled by a match statement, never by catching a
JSON decode error, so which code path runs is always explicit and logged.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from workflow_copilot.agent import heuristics
from workflow_copilot.agent.models import (
    EntityExtraction,
    IntentClassification,
    WorkflowStructure,
)
from workflow_copilot.agent.validator import determine_complexity, estimate_execution_time
from workflow_copilot.config import AgentSettings
from workflow_copilot.parsing import (
    ParsedOutput,
    StructuredOutput,
    UnstructuredOutput,
    expect_object,
    parse_llm_json,
)
from workflow_copilot.reasoning import (
    DEFAULT_MODEL,
    BackendError,
    GenerationBackend,
    GenerationConfig,
)

logger = logging.getLogger("workflow_copilot.agent.generation")

T = TypeVar("T")


@dataclass
class Generated(Generic[T]):
    """A generated artifact plus where it came from."""

    value: T
    source: str  # "backend" | "heuristic"
    tokens_used: int = 0


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_CLASSIFY_PROMPT = """\
Analyze this workflow request and classify it.

User Input: "{user_input}"

Categories: WEB_SCRAPING, AI_ANALYSIS, DATA_PROCESSING, SEARCH_AND_RETRIEVAL,
CONTENT_GENERATION, JOB_APPLICATION, DOCUMENT_PROCESSING, DATA_INTEGRATION,
WORKFLOW_ORCHESTRATION, MIXED

Complexity levels:
- SIMPLE: 1-3 nodes, linear flow
- MODERATE: 4-6 nodes, some branching
- COMPLEX: 7+ nodes, multiple data sources, conditional logic
- ENTERPRISE: 10+ nodes, parallel processing, error handling

Respond with JSON only:
{{
  "intent": "WEB_SCRAPING",
  "complexity": "SIMPLE",
  "stepBreakdown": [
    {{"step": 1, "operation": "data_input", "description": "Accept URL input", "nodeType": "dataInput"}}
  ],
  "dataFlow": "url → scraped_content → ai_analysis",
  "integrationPoints": ["web_scraper_to_ai"],
  "confidence": 0.95,
  "reasoning": "Short explanation"
}}
"""

_EXTRACT_PROMPT = """\
Extract specific entities from this workflow description.

Input: "{user_input}"
Intent: {intent}
Complexity: {complexity}

Respond with JSON only, every value a list of strings:
{{
  "urls": [], "dataTypes": [], "outputFormats": [], "aiTasks": [],
  "processingSteps": [], "targetSites": [], "dataSources": [],
  "databaseOps": [], "slackChannels": [], "discordChannels": [],
  "emailRecipients": [], "databaseTypes": [], "notificationTypes": [],
  "emailTypes": []
}}
"""

_WORKFLOW_PROMPT = """\
You are an AI workflow designer. Create a workflow structure for this request.

User Request: "{user_input}"
Intent: {intent} (confidence: {confidence})
Complexity: {complexity}
Reasoning: {reasoning}
Step Breakdown: {steps}
Data Flow: {data_flow}

Extracted Entities:
- URLs: {urls}
- Data Types: {data_types}
- Output Formats: {output_formats}
- AI Tasks: {ai_tasks}
- Processing Steps: {processing_steps}

Available node types: dataInput, webScraping, llmTask, structuredOutput,
embeddingGenerator, similaritySearch, database, slack, discord, gmail, dataOutput.

Rules:
1. Start with a dataInput node and end with a dataOutput node.
2. Configure every node with realistic settings.
3. Pass data between nodes with variable substitution ({{{{nodeId.output}}}}).
4. Edges reference nodes as "node-<index>" in the order listed.

Respond with valid JSON only:
{{
  "nodes": [{{"type": "dataInput", "label": "Input", "config": {{"dataType": "text"}}}}],
  "edges": [{{"source": "node-0", "target": "node-1"}}],
  "topology": {{"type": "linear", "description": "...", "parallelExecution": false}},
  "complexity": "low",
  "estimatedExecutionTime": 5000
}}
"""


def _joined(values: list[str]) -> str:
    return ", ".join(values) or "None"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class WorkflowGenerationService:
    """Turns request text into intent, entities and a workflow graph.

    backend may be None, in which case every call goes straight to the
    heuristics.
    """

    def __init__(
        self,
        backend: GenerationBackend | None,
        settings: AgentSettings | None = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._backend = backend
        self._settings = settings or AgentSettings()
        self.classify_config = GenerationConfig(model=model, temperature=0.1, max_tokens=200)
        self.extract_config = GenerationConfig(model=model, temperature=0.1, max_tokens=300)
        self.workflow_config = GenerationConfig(model=model, temperature=0.3, max_tokens=1000)

    @property
    def backend(self) -> GenerationBackend | None:
        return self._backend

    async def _ask(self, stage: str, prompt: str, config: GenerationConfig) -> tuple[ParsedOutput, int] | None:
        """Call the backend. None means "use heuristics" (no backend or absorbed failure)."""
        if self._backend is None:
            return None
        try:
            response = await self._backend.generate(prompt, config)
        except BackendError as e:
            if not self._settings.fallback_on_backend_error:
                raise
            logger.warning("[%s] Backend call failed, falling back to heuristics: %s", stage, e)
            return None
        return parse_llm_json(response.content), response.total_tokens

    @staticmethod
    def _log_fallback(stage: str, reason: str) -> None:
        logger.info("[%s] Unstructured backend output (%s), using heuristics", stage, reason)

    # ------------------------------------------------------------------

    async def classify_intent(self, user_input: str) -> Generated[IntentClassification]:
        outcome = await self._ask(
            "CLASSIFY", _CLASSIFY_PROMPT.format(user_input=user_input), self.classify_config
        )
        tokens = 0
        if outcome is not None:
            parsed, tokens = outcome
            match expect_object(parsed, required=("intent", "confidence")):
                case StructuredOutput(value=value) if isinstance(value["confidence"], (int, float)):
                    return Generated(IntentClassification.from_dict(value), "backend", tokens)
                case StructuredOutput():
                    self._log_fallback("CLASSIFY", "confidence is not a number")
                case UnstructuredOutput(reason=reason):
                    self._log_fallback("CLASSIFY", reason)
        return Generated(heuristics.classify_intent(user_input), "heuristic", tokens)

    async def extract_entities(
        self,
        user_input: str,
        intent: IntentClassification | None = None,
    ) -> Generated[EntityExtraction]:
        prompt = _EXTRACT_PROMPT.format(
            user_input=user_input,
            intent=intent.intent if intent else "Unknown",
            complexity=intent.complexity if intent else "SIMPLE",
        )
        outcome = await self._ask("EXTRACT", prompt, self.extract_config)
        tokens = 0
        if outcome is not None:
            parsed, tokens = outcome
            match expect_object(parsed):
                case StructuredOutput(value=value):
                    return Generated(EntityExtraction.from_dict(value), "backend", tokens)
                case UnstructuredOutput(reason=reason):
                    self._log_fallback("EXTRACT", reason)
        return Generated(heuristics.extract_entities(user_input), "heuristic", tokens)

    async def generate_workflow(
        self,
        user_input: str,
        intent: IntentClassification,
        entities: EntityExtraction,
    ) -> Generated[WorkflowStructure]:
        prompt = _WORKFLOW_PROMPT.format(
            user_input=user_input,
            intent=intent.intent,
            confidence=intent.confidence,
            complexity=intent.complexity,
            reasoning=intent.reasoning,
            steps=json.dumps([s.to_dict() for s in intent.step_breakdown]),
            data_flow=intent.data_flow or "Not specified",
            urls=_joined(entities.urls),
            data_types=_joined(entities.data_types),
            output_formats=_joined(entities.output_formats),
            ai_tasks=_joined(entities.ai_tasks),
            processing_steps=_joined(entities.processing_steps),
        )
        outcome = await self._ask("GENERATE", prompt, self.workflow_config)
        tokens = 0
        if outcome is not None:
            parsed, tokens = outcome
            match expect_object(parsed, required=("nodes", "edges", "topology")):
                case StructuredOutput(value=value) if _is_workflow_shape(value):
                    return Generated(_workflow_from_backend(value), "backend", tokens)
                case StructuredOutput():
                    self._log_fallback("GENERATE", "nodes/edges/topology have the wrong shape")
                case UnstructuredOutput(reason=reason):
                    self._log_fallback("GENERATE", reason)
        return Generated(heuristics.generate_workflow(user_input, intent, entities), "heuristic", tokens)


def _is_workflow_shape(value: dict) -> bool:
    topology = value.get("topology")
    return (
        isinstance(value.get("nodes"), list)
        and isinstance(value.get("edges"), list)
        and isinstance(topology, dict)
        and bool(topology.get("type"))
    )


def _workflow_from_backend(value: dict) -> WorkflowStructure:
    workflow = WorkflowStructure.from_dict(value)
    if "complexity" not in value:
        workflow.complexity = determine_complexity(workflow)
    if not workflow.estimated_execution_time:
        workflow.estimated_execution_time = estimate_execution_time(workflow)
    return workflow
