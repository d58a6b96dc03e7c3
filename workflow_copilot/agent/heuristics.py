"""Deterministic classifier, entity extractor and workflow generator.

Used whenever the generation backend is absent, fails, or returns content that
does not parse into the requested shape. Everything here is keyword matching
over the lowercased request; no I/O.

Intent rules (first match wins):
  web / scrape / url            → WEB_SCRAPING          0.7
  job / resume / application    → JOB_APPLICATION       0.8
  ai / analyze / process        → AI_ANALYSIS           0.6
  search / similar / find       → SEARCH_AND_RETRIEVAL  0.6
  otherwise                     → GENERAL_PROCESSING    0.5
"""

from __future__ import annotations

import re
import time

from workflow_copilot.agent.models import (
    EntityExtraction,
    IntentClassification,
    StepBreakdown,
    Topology,
    WorkflowEdge,
    WorkflowNode,
    WorkflowStructure,
)
from workflow_copilot.agent.validator import determine_complexity, estimate_execution_time
from workflow_copilot.reasoning import DEFAULT_MODEL

_URL = re.compile(r"https?://[^\s]+", re.IGNORECASE)

# ---------------------------------------------------------------------------
# Complexity
# ---------------------------------------------------------------------------

COMPLEXITY_INDICATORS: dict[str, tuple[str, ...]] = {
    "multi_step": ("then", "after", "next", "followed by", "subsequently", "and then", "finally"),
    "conditional": ("if", "when", "depending on", "based on", "unless", "provided that"),
    "parallel": ("simultaneously", "at the same time", "in parallel", "concurrently", "meanwhile"),
    "iterative": ("for each", "loop", "repeat", "batch", "multiple", "all", "every"),
    "integration": ("combine", "merge", "integrate", "connect", "link", "join"),
    "analysis": ("analyze", "examine", "evaluate", "assess", "review", "study"),
    "transformation": ("convert", "transform", "format", "structure", "reorganize", "restructure"),
    "complex": ("workflow", "pipeline", "process", "automation", "orchestration", "system"),
}


def detect_complexity(text: str) -> str:
    """SIMPLE → MODERATE on any indicator; two multi-step words → COMPLEX;
    two "complex" words → ENTERPRISE. Later groups can override earlier ones.
    """
    lowered = text.lower()
    complexity = "SIMPLE"
    for group, keywords in COMPLEXITY_INDICATORS.items():
        matches = sum(1 for kw in keywords if kw in lowered)
        if not matches:
            continue
        if group == "complex" and matches >= 2:
            complexity = "ENTERPRISE"
        elif group == "multi_step" and matches >= 2:
            complexity = "COMPLEX"
        elif complexity == "SIMPLE":
            complexity = "MODERATE"
    return complexity


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

_STEP_TABLES: dict[str, tuple[tuple[str, str, str], ...]] = {
    "WEB_SCRAPING": (
        ("data_input", "Accept URL input", "dataInput"),
        ("web_scraping", "Extract content from website", "webScraping"),
        ("data_output", "Export scraped data", "dataOutput"),
    ),
    "JOB_APPLICATION": (
        ("data_input", "Accept resume/application data", "dataInput"),
        ("ai_analysis", "Analyze resume with AI", "llmTask"),
        ("data_processing", "Structure application data", "structuredOutput"),
        ("data_output", "Generate application output", "dataOutput"),
    ),
    "AI_ANALYSIS": (
        ("data_input", "Accept text/data input", "dataInput"),
        ("ai_analysis", "Process with AI model", "llmTask"),
        ("data_output", "Export analysis results", "dataOutput"),
    ),
    "SEARCH_AND_RETRIEVAL": (
        ("data_input", "Accept search query", "dataInput"),
        ("embedding_generation", "Create vector embeddings", "embeddingGenerator"),
        ("similarity_search", "Find similar content", "similaritySearch"),
        ("data_output", "Export search results", "dataOutput"),
    ),
    "GENERAL_PROCESSING": (
        ("data_input", "Accept input data", "dataInput"),
        ("data_processing", "Process the data", "llmTask"),
        ("data_output", "Export processed data", "dataOutput"),
    ),
}

# (keywords, intent, confidence, reasoning, data flow, integration points)
_INTENT_RULES: tuple[tuple[tuple[str, ...], str, float, str, str, tuple[str, ...]], ...] = (
    (("web", "scrape", "url"), "WEB_SCRAPING", 0.7,
     "Detected web-related keywords", "url → web_scraping → output",
     ("web_scraper_to_processor",)),
    (("job", "resume", "application"), "JOB_APPLICATION", 0.8,
     "Detected job application keywords", "resume → analysis → matching → application",
     ("resume_to_analyzer", "analyzer_to_matcher")),
    (("ai", "analyze", "process"), "AI_ANALYSIS", 0.6,
     "Detected AI analysis keywords", "data → ai_analysis → structured_output",
     ("data_to_ai", "ai_to_processor")),
    (("search", "similar", "find"), "SEARCH_AND_RETRIEVAL", 0.6,
     "Detected search-related keywords", "query → embedding → search → results",
     ("query_to_embedding", "embedding_to_search")),
)


def step_breakdown(intent: str) -> list[StepBreakdown]:
    table = _STEP_TABLES.get(intent, _STEP_TABLES["GENERAL_PROCESSING"])
    return [
        StepBreakdown(step=i, operation=op, description=desc, node_type=node_type)
        for i, (op, desc, node_type) in enumerate(table, start=1)
    ]


def classify_intent(text: str) -> IntentClassification:
    lowered = text.lower()
    complexity = detect_complexity(lowered)
    for keywords, intent, confidence, reasoning, flow, points in _INTENT_RULES:
        if any(kw in lowered for kw in keywords):
            return IntentClassification(
                intent=intent,
                confidence=confidence,
                reasoning=reasoning,
                complexity=complexity,
                step_breakdown=step_breakdown(intent),
                data_flow=flow,
                integration_points=list(points),
            )
    return IntentClassification(
        intent="GENERAL_PROCESSING",
        confidence=0.5,
        reasoning="No specific intent keywords detected",
        complexity=complexity,
        step_breakdown=step_breakdown("GENERAL_PROCESSING"),
        data_flow="input → processing → output",
        integration_points=[],
    )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def extract_entities(text: str) -> EntityExtraction:
    lowered = text.lower()
    e = EntityExtraction()

    e.urls = _URL.findall(text)

    for fmt in ("json", "csv", "pdf"):
        if fmt in lowered:
            e.data_types.append(fmt)
    if "resume" in lowered or "cv" in lowered:
        e.data_types.append("text")
        e.data_sources.append("resume")
    if "url" in lowered or "website" in lowered:
        e.data_types.append("url")

    for task in ("analyze", "summarize", "generate", "extract", "classify"):
        if task in lowered:
            e.ai_tasks.append(task)

    for fmt in ("json", "text", "csv", "markdown"):
        if fmt in lowered:
            e.output_formats.append(fmt)

    for keyword, step in (
        ("scrape", "scrape content"),
        ("analyze", "analyze with AI"),
        ("format", "format output"),
        ("search", "search content"),
    ):
        if keyword in lowered:
            e.processing_steps.append(step)

    for keyword, site in (("job", "job boards"), ("news", "news sites"), ("blog", "blog sites")):
        if keyword in lowered:
            e.target_sites.append(site)

    for keywords, op in (
        (("query", "select"), "query"),
        (("insert", "create"), "insert"),
        (("update", "modify"), "update"),
        (("delete", "remove"), "delete"),
    ):
        if any(kw in lowered for kw in keywords):
            e.database_ops.append(op)

    if "slack" in lowered:
        e.notification_types.append("slack")
        if "channel" in lowered:
            e.slack_channels.append("#general")
    if "discord" in lowered:
        e.notification_types.append("discord")
        if "channel" in lowered:
            e.discord_channels.append("#announcements")
    if "email" in lowered or "gmail" in lowered:
        e.email_types.append("notification")
        if "team" in lowered:
            e.email_recipients.append("team@company.com")

    for kind in ("reminder", "alert", "report"):
        if kind in lowered:
            e.notification_types.append(kind)

    if "postgres" in lowered:
        e.database_types.append("PostgreSQL")
    if "mongo" in lowered:
        e.database_types.append("MongoDB")
    if "mysql" in lowered:
        e.database_types.append("MySQL")

    return e


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

_AI_PROMPTS: tuple[tuple[str, str], ...] = (
    ("summarize", "Summarize the following content in 2-3 sentences: {{input.output}}"),
    ("analyze", "Analyze the following content and provide insights: {{input.output}}"),
    ("extract", "Extract key information from the following content: {{input.output}}"),
    ("classify", "Classify the following content into categories: {{input.output}}"),
)


def ai_prompt_for(entities: EntityExtraction) -> str:
    for task, prompt in _AI_PROMPTS:
        if task in entities.ai_tasks:
            return prompt
    return "Process the following content: {{input.output}}"


def generate_workflow(
    text: str,
    intent: IntentClassification,
    entities: EntityExtraction,
) -> WorkflowStructure:
    """Linear fallback graph: input → scraper? → LLM? → output.

    Every node is fully configured so the result validates cleanly.
    """
    first_url = entities.urls[0] if entities.urls else None
    nodes = [
        WorkflowNode(
            id="input-node",
            type="dataInput",
            label="Input Data",
            config={
                "dataType": entities.data_types[0] if entities.data_types else "text",
                "defaultValue": first_url or "Enter your data here",
            },
        )
    ]

    if intent.intent == "WEB_SCRAPING" or entities.urls:
        nodes.append(WorkflowNode(
            id="web-scraper",
            type="webScraping",
            label="Web Scraper",
            config={
                "url": first_url or "{{input.output}}",
                "formats": ["markdown", "html"],
                "onlyMainContent": True,
            },
        ))

    if intent.intent == "AI_ANALYSIS" or entities.ai_tasks:
        nodes.append(WorkflowNode(
            id="ai-analyzer",
            type="llmTask",
            label="AI Analyzer",
            config={
                "prompt": ai_prompt_for(entities),
                "model": DEFAULT_MODEL,
                "temperature": 0.7,
            },
        ))

    nodes.append(WorkflowNode(
        id="data-output",
        type="dataOutput",
        label="Data Output",
        config={
            "format": entities.output_formats[0] if entities.output_formats else "json",
            "filename": f"workflow_output_{int(time.time() * 1000)}.json",
        },
    ))

    edges = [
        WorkflowEdge(id=f"edge-{i + 1}", source=nodes[i].id, target=nodes[i + 1].id)
        for i in range(len(nodes) - 1)
    ]
    workflow = WorkflowStructure(
        id="generated-workflow",
        name="Generated Workflow",
        nodes=nodes,
        edges=edges,
        topology=Topology(
            type="linear",
            description=f"Generated workflow for: {intent.intent}",
            parallel_execution=False,
        ),
    )
    workflow.complexity = determine_complexity(workflow)
    workflow.estimated_execution_time = estimate_execution_time(workflow)
    return workflow
