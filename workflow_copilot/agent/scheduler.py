"""Execution plans and the DAG scheduler that runs them.

create_execution_plan() turns a requested tool subset into an ExecutionPlan
using a static dependency table:

    extract_entities      ← classify_intent
    generate_workflow     ← classify_intent, extract_entities
    validate_workflow     ← generate_workflow
    generate_suggestions  ← generate_workflow

Dependencies are kept only among the requested tools. The time estimate is a
flat 2000 ms per tool.

run_plan() executes a plan with a caller-supplied async runner:
  parallel=False  one tool at a time, in topological order (ties keep the
                  requested order)
  parallel=True   every tool whose dependencies are done is started as an
                  asyncio task; the next wave starts when a wave completes
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("workflow_copilot.agent.scheduler")

TOOL_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    "classify_intent": (),
    "extract_entities": ("classify_intent",),
    "generate_workflow": ("classify_intent", "extract_entities"),
    "validate_workflow": ("generate_workflow",),
    "generate_suggestions": ("generate_workflow",),
}

ESTIMATED_MS_PER_TOOL = 2000


@dataclass
class ExecutionPlan:
    tools: list[str]
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    parallel: bool = False
    estimated_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tools": list(self.tools),
            "dependencies": {k: list(v) for k, v in self.dependencies.items()},
            "parallel": self.parallel,
            "estimatedTime": self.estimated_time,
        }


def create_execution_plan(tools: list[str], parallel: bool = False) -> ExecutionPlan:
    requested = list(dict.fromkeys(tools))
    wanted = set(requested)
    return ExecutionPlan(
        tools=requested,
        dependencies={
            name: [dep for dep in TOOL_DEPENDENCIES.get(name, ()) if dep in wanted]
            for name in requested
        },
        parallel=parallel,
        estimated_time=ESTIMATED_MS_PER_TOOL * len(requested),
    )


def topological_waves(plan: ExecutionPlan) -> list[list[str]]:
    """Group plan tools into waves; every tool's dependencies sit in earlier waves.

    Raises:
        ValueError: the dependency graph has a cycle.
    """
    done: set[str] = set()
    remaining = list(plan.tools)
    waves: list[list[str]] = []
    while remaining:
        wave = [t for t in remaining if all(d in done for d in plan.dependencies.get(t, []))]
        if not wave:
            raise ValueError(f"Execution plan has a dependency cycle among: {remaining}")
        waves.append(wave)
        done.update(wave)
        remaining = [t for t in remaining if t not in done]
    return waves


async def run_plan(
    plan: ExecutionPlan,
    runner: Callable[[str], Awaitable[Any]],
) -> dict[str, Any]:
    """Run every tool in the plan; return {tool_name: runner result}.

    An exception from the runner propagates; in parallel mode the other tasks
    of the same wave are cancelled first.
    """
    results: dict[str, Any] = {}
    for wave in topological_waves(plan):
        if not plan.parallel or len(wave) == 1:
            for name in wave:
                results[name] = await runner(name)
            continue

        logger.debug("[SCHEDULER] Running wave concurrently: %s", wave)
        tasks = {name: asyncio.create_task(runner(name)) for name in wave}
        try:
            await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                task.cancel()
            raise
        for name, task in tasks.items():
            results[name] = task.result()
    return results
