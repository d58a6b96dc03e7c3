"""ToolRegistry — name-keyed store of pipeline tools.

Semantics:
  register(tool)    last write wins; an overwrite keeps the name's original
                    position in list()
  get(name)         tool or None, never raises
  list()            names in registration order
  unregister(name)  no-op for unknown names
  clear()           empty the registry (test isolation)

No dependency ordering is enforced here. Ordering is the orchestrator's job
(see WorkflowAgent.create_execution_plan).
"""

from __future__ import annotations

import logging
from typing import Any

from workflow_copilot.agent.tools import BaseTool

logger = logging.getLogger("workflow_copilot.agent.registry")


class ToolRegistry:
    """Registry of pipeline tools.

    Usage:
        registry = ToolRegistry()
        registry.register(ClassifyIntentTool(service))
        tool = registry.get("classify_intent")
        registry.list()        # → ["classify_intent"]
        registry.describe()    # → [{"name": ..., "parameters": {...}}]
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        if not tool.name:
            raise ValueError(f"{type(tool).__name__} has no name and cannot be registered")
        if tool.name in self._tools:
            logger.info("[REGISTRY] Replacing tool %r", tool.name)
        else:
            logger.info("[REGISTRY] Registered tool %r", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def unregister(self, name: str) -> None:
        if self._tools.pop(name, None) is not None:
            logger.info("[REGISTRY] Unregistered tool %r", name)

    def list(self) -> list[str]:
        return list(self._tools)

    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def describe(self) -> list[dict[str, Any]]:
        """JSON-schema definitions for every registered tool, in order."""
        return [tool.definition() for tool in self._tools.values()]

    def clear(self) -> None:
        count = len(self._tools)
        self._tools.clear()
        logger.info("[REGISTRY] Cleared %d tool(s)", count)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={self.list()!r})"
