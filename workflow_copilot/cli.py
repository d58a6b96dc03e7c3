"""Command-line client for the workflow co-pilot.

Usage:
    workflow-copilot generate "Scrape https://example.com and summarize it"
    workflow-copilot generate "..." --json
    workflow-copilot validate workflow.json
    workflow-copilot serve --port 8000
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from argparse import ArgumentParser
from pathlib import Path

from workflow_copilot.agent.errors import PipelineError
from workflow_copilot.agent.manager import AgentManager
from workflow_copilot.agent.orchestrator import AgentResult
from workflow_copilot.agent.reporting import format_for_user
from workflow_copilot.config import AgentSettings


def _load_env() -> None:
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except ImportError:
        pass


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _generate(text: str, as_json: bool) -> int:
    manager = AgentManager.build()
    try:
        result = await manager.process_workflow_request(text)
    finally:
        await manager.aclose()

    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_result(result)
    return 0 if result.success else 1


def _print_result(result: AgentResult) -> None:
    if not result.success:
        print("Request failed.")
        if result.error_context is not None:
            print(format_for_user(result.error_context))
        else:
            print(result.error)
        return

    parsed = result.data["parsedIntent"]
    workflow = parsed.workflow
    print(f"Intent     : {parsed.intent} ({parsed.confidence:.2f})")
    print(f"Confidence : {result.confidence:.2f}")
    print(f"Tools      : {', '.join(result.tools_used)}")
    print(f"Complexity : {workflow.complexity} (~{workflow.estimated_execution_time} ms)")
    print("-" * 60)
    for node in workflow.nodes:
        print(f"  [{node.id}] {node.type}: {node.label}")
    for edge in workflow.edges:
        print(f"  {edge.source} -> {edge.target}")

    validation = result.data.get("validation")
    if validation is not None:
        print("-" * 60)
        print("Valid" if validation.is_valid else "Issues:")
        for issue in validation.issues:
            print(f"  - {issue}")

    suggestions = result.data.get("suggestions") or []
    if suggestions:
        print("-" * 60)
        print("Suggestions:")
        for s in suggestions:
            print(f"  - {s}")


async def _validate(path: Path) -> int:
    try:
        workflow = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read workflow from {path}: {e}", file=sys.stderr)
        return 2
    if not isinstance(workflow, dict):
        print(f"{path} does not contain a workflow object", file=sys.stderr)
        return 2

    manager = AgentManager.build()
    try:
        report = await manager.validate_workflow(workflow)
    except PipelineError as e:
        print(format_for_user(e.context), file=sys.stderr)
        return 1
    finally:
        await manager.aclose()

    print(json.dumps(report, indent=2))
    return 0 if report.get("isValid") else 1


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    _load_env()
    settings = AgentSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(levelname)s: %(message)s",
    )

    parser = ArgumentParser(
        prog="workflow-copilot",
        description="Workflow co-pilot: natural language → workflow graph",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    gen_p = sub.add_parser("generate", help="Generate a workflow from a description")
    gen_p.add_argument("text", help="Natural-language description of the workflow")
    gen_p.add_argument("--json", action="store_true", help="Print the full result as JSON")

    val_p = sub.add_parser("validate", help="Validate a workflow JSON file")
    val_p.add_argument("file", type=Path, help="Path to a workflow JSON file")

    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=8000)
    serve_p.add_argument("--reload", action="store_true")

    args = parser.parse_args(argv)

    match args.command:
        case "generate":
            sys.exit(asyncio.run(_generate(args.text, args.json)))
        case "validate":
            sys.exit(asyncio.run(_validate(args.file)))
        case "serve":
            from workflow_copilot.api import serve
            serve(host=args.host, port=args.port, reload=args.reload)
        case _:
            parser.print_help()
            sys.exit(1)


if __name__ == "__main__":
    main()
