"""Execution plans and the DAG scheduler."""

from __future__ import annotations

import asyncio

import pytest

from workflow_copilot.agent.scheduler import (
    ESTIMATED_MS_PER_TOOL,
    ExecutionPlan,
    create_execution_plan,
    run_plan,
    topological_waves,
)

FULL_PIPELINE = [
    "classify_intent",
    "extract_entities",
    "generate_workflow",
    "validate_workflow",
    "generate_suggestions",
]


class TestCreatePlan:
    def test_dependencies_for_full_pipeline(self):
        plan = create_execution_plan(FULL_PIPELINE)
        assert plan.dependencies["classify_intent"] == []
        assert plan.dependencies["extract_entities"] == ["classify_intent"]
        assert plan.dependencies["generate_workflow"] == ["classify_intent", "extract_entities"]
        assert plan.dependencies["validate_workflow"] == ["generate_workflow"]
        assert plan.estimated_time == ESTIMATED_MS_PER_TOOL * 5
        assert plan.parallel is False

    def test_dependencies_limited_to_requested_tools(self):
        plan = create_execution_plan(["generate_workflow", "validate_workflow"])
        assert plan.dependencies == {
            "generate_workflow": [],
            "validate_workflow": ["generate_workflow"],
        }

    def test_duplicates_collapsed(self):
        plan = create_execution_plan(["validate_workflow", "validate_workflow"])
        assert plan.tools == ["validate_workflow"]

    def test_to_dict(self):
        d = create_execution_plan(["classify_intent"], parallel=True).to_dict()
        assert d == {
            "tools": ["classify_intent"],
            "dependencies": {"classify_intent": []},
            "parallel": True,
            "estimatedTime": 2000,
        }


class TestWaves:
    def test_full_pipeline_waves(self):
        waves = topological_waves(create_execution_plan(FULL_PIPELINE))
        assert waves == [
            ["classify_intent"],
            ["extract_entities"],
            ["generate_workflow"],
            ["validate_workflow", "generate_suggestions"],
        ]

    def test_cycle_rejected(self):
        plan = ExecutionPlan(tools=["a", "b"], dependencies={"a": ["b"], "b": ["a"]})
        with pytest.raises(ValueError):
            topological_waves(plan)


class TestRunPlan:
    @pytest.mark.asyncio
    async def test_sequential_order(self):
        order: list[str] = []

        async def runner(name: str) -> str:
            order.append(name)
            return name.upper()

        results = await run_plan(create_execution_plan(FULL_PIPELINE), runner)
        assert order == FULL_PIPELINE
        assert results["generate_workflow"] == "GENERATE_WORKFLOW"

    @pytest.mark.asyncio
    async def test_parallel_wave_runs_concurrently(self):
        running = 0
        peak = 0

        async def runner(name: str) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        plan = create_execution_plan(["validate_workflow", "generate_suggestions"], parallel=True)
        await run_plan(plan, runner)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_error_propagates(self):
        async def runner(name: str) -> None:
            if name == "extract_entities":
                raise RuntimeError("stage failed")

        with pytest.raises(RuntimeError):
            await run_plan(create_execution_plan(FULL_PIPELINE), runner)
