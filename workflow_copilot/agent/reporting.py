"""ErrorReporter — pure formatting and policy over an ErrorContext.

No state. Every function takes the diagnostic and returns a value:

  format_for_user(ctx)       short multi-line summary for end users
  format_for_developer(ctx)  indented JSON dump of the whole context
  is_recoverable(ctx)        allow-list: cache_error, validation_error
  retry_recommendation(ctx)  static per-kind retry table
  support_report(ctx)        summary / technical details / impact / actions
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from workflow_copilot.agent.errors import ErrorContext, ErrorKind

RECOVERABLE_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.CACHE_ERROR,
    ErrorKind.VALIDATION_ERROR,
})


@dataclass(frozen=True)
class RetryRecommendation:
    should_retry: bool
    delay_ms: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"shouldRetry": self.should_retry, "delayMs": self.delay_ms, "reason": self.reason}


RETRY_TABLE: dict[ErrorKind, RetryRecommendation] = {
    ErrorKind.TOOL_REGISTRY_MISS: RetryRecommendation(
        False, 0, "Tool registration issue requires system fix"
    ),
    ErrorKind.TOOL_EXECUTION_FAILURE: RetryRecommendation(
        True, 1000, "Tool execution may succeed on retry"
    ),
    ErrorKind.LLM_ERROR: RetryRecommendation(
        True, 2000, "Generation backend may be temporarily unavailable"
    ),
    ErrorKind.VALIDATION_ERROR: RetryRecommendation(
        False, 0, "Validation error requires user input correction"
    ),
    ErrorKind.CACHE_ERROR: RetryRecommendation(
        True, 0, "Cache error is non-critical"
    ),
    ErrorKind.UNKNOWN: RetryRecommendation(
        True, 5000, "Unknown error - retry with delay"
    ),
}


@dataclass(frozen=True)
class SupportReport:
    summary: str
    technical_details: dict[str, Any]
    user_impact: str
    recommended_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "technicalDetails": self.technical_details,
            "userImpact": self.user_impact,
            "recommendedActions": list(self.recommended_actions),
        }


def format_for_user(ctx: ErrorContext) -> str:
    lines = [f"Error occurred during {ctx.stage}"]
    if ctx.tool_name:
        lines.append(f"Tool: {ctx.tool_name}")
    lines.append(f"Time: {ctx.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    lines.append(f"Session: {ctx.session_id}")

    if ctx.suggestions:
        lines.append("")
        lines.append("Suggestions:")
        lines.extend(f"   {i}. {s}" for i, s in enumerate(ctx.suggestions, start=1))

    if ctx.partial_results:
        lines.append("")
        lines.append("Partial Results Available:")
        lines.extend(
            f"   - {key}: {type(value).__name__}" for key, value in ctx.partial_results.items()
        )
    return "\n".join(lines)


def format_for_developer(ctx: ErrorContext) -> str:
    return json.dumps(ctx.to_dict(), indent=2, default=str)


def is_recoverable(ctx: ErrorContext) -> bool:
    return ctx.error_kind in RECOVERABLE_KINDS


def retry_recommendation(ctx: ErrorContext) -> RetryRecommendation:
    return RETRY_TABLE.get(ctx.error_kind, RETRY_TABLE[ErrorKind.UNKNOWN])


def support_report(ctx: ErrorContext) -> SupportReport:
    if ctx.partial_results:
        impact = "Partial workflow generated - some steps completed successfully"
    else:
        impact = "Workflow generation failed"
    return SupportReport(
        summary=f"Error in {ctx.stage} during {ctx.error_kind.value}",
        technical_details={
            "stage": ctx.stage,
            "toolName": ctx.tool_name,
            "errorType": ctx.error_kind.value,
            "message": ctx.message,
            "timestamp": ctx.timestamp.isoformat(),
            "sessionId": ctx.session_id,
            "stackTrace": ctx.stack_trace,
        },
        user_impact=impact,
        recommended_actions=[
            *ctx.suggestions,
            "Check system logs for additional context",
            "Verify external service availability",
        ],
    )
