"""Per-stage timing telemetry for pipeline runs.

StageMetrics  — snapshot of one stage's duration, outcome and token usage.
StageTimer    — async context manager; read .result / .to_dict() after exit.

Usage::

    async with StageTimer("intent_classification", "classify_intent") as t:
        result = await tool.execute(params)
        t.tokens_used = result.metadata.tokens_used or 0
        t.success = result.success
    run_metrics.append(t.to_dict())

An exception escaping the block is recorded as success=False and re-raised.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Any


@dataclasses.dataclass
class StageMetrics:
    """Timing snapshot for one pipeline stage.

    Fields
    ------
    stage:        Pipeline stage name ("intent_classification", ...).
    tool_name:    Tool invoked by the stage, if any.
    start_ts:     Unix timestamp at stage start (time.time()).
    end_ts:       Unix timestamp at stage end.
    duration_ms:  (end_ts - start_ts) * 1000.
    success:      Whether the stage produced a usable result.
    tokens_used:  Backend tokens consumed (0 when no backend call happened).
    cache_hit:    True when the stage was served from the result cache.
    """

    stage: str
    tool_name: str | None
    start_ts: float
    end_ts: float
    duration_ms: float
    success: bool = True
    tokens_used: int = 0
    cache_hit: bool = False


class StageTimer:
    """Async context manager that records one stage's StageMetrics."""

    def __init__(self, stage: str, tool_name: str | None = None) -> None:
        self.stage = stage
        self.tool_name = tool_name
        self.success: bool = True
        self.tokens_used: int = 0
        self.cache_hit: bool = False
        self._start_ts: float = 0.0
        self._result: StageMetrics | None = None

    async def __aenter__(self) -> "StageTimer":
        self._start_ts = time.time()
        return self

    async def __aexit__(self, exc_type: object, *_args: object) -> None:
        end_ts = time.time()
        self._result = StageMetrics(
            stage=self.stage,
            tool_name=self.tool_name,
            start_ts=self._start_ts,
            end_ts=end_ts,
            duration_ms=(end_ts - self._start_ts) * 1000,
            success=self.success and exc_type is None,
            tokens_used=self.tokens_used,
            cache_hit=self.cache_hit,
        )

    @property
    def result(self) -> StageMetrics | None:
        """Finalized StageMetrics after the context manager exits, else None."""
        return self._result

    def to_dict(self) -> dict[str, Any]:
        """Finalized StageMetrics as a JSON-serialisable dict ({} before exit)."""
        return dataclasses.asdict(self._result) if self._result is not None else {}
