"""ErrorContext construction and the reporting functions built on it."""

from __future__ import annotations

import json

from workflow_copilot.agent.errors import (
    ErrorContext,
    ErrorKind,
    PipelineError,
    build_suggestions,
    classify_exception,
)
from workflow_copilot.agent.models import IntentClassification
from workflow_copilot.agent.reporting import (
    format_for_developer,
    format_for_user,
    is_recoverable,
    retry_recommendation,
    support_report,
)
from workflow_copilot.reasoning import BackendError


def _ctx(kind: ErrorKind = ErrorKind.LLM_ERROR, partial: dict | None = None, **kwargs) -> ErrorContext:
    return ErrorContext.create(
        stage=kwargs.pop("stage", "workflow_generation"),
        error_kind=kind,
        message=kwargs.pop("message", "backend unavailable"),
        session_id="session_1_abc",
        user_input="Scrape a page",
        tool_name=kwargs.pop("tool_name", "generate_workflow"),
        input_parameters={"userInput": "Scrape a page"},
        partial_results=partial,
        **kwargs,
    )


class TestErrorKind:
    def test_parse_known_value(self):
        assert ErrorKind.parse("validation_error") is ErrorKind.VALIDATION_ERROR

    def test_parse_none_defaults_to_execution_failure(self):
        assert ErrorKind.parse(None) is ErrorKind.TOOL_EXECUTION_FAILURE

    def test_parse_unknown_string(self):
        assert ErrorKind.parse("something_else") is ErrorKind.UNKNOWN

    def test_classify_exception(self):
        assert classify_exception(TimeoutError()) is ErrorKind.LLM_ERROR
        assert classify_exception(BackendError("503", status_code=503)) is ErrorKind.LLM_ERROR
        assert classify_exception(ValueError("bad")) is ErrorKind.TOOL_EXECUTION_FAILURE
        assert classify_exception(PipelineError(_ctx(ErrorKind.CACHE_ERROR))) is ErrorKind.CACHE_ERROR


class TestErrorContext:
    def test_partial_results_are_copied(self):
        intent = IntentClassification(intent="WEB_SCRAPING", confidence=0.7)
        partial = {"intent": intent}
        ctx = _ctx(partial=partial)
        partial["entities"] = "late addition"
        assert set(ctx.partial_results) == {"intent"}
        assert ctx.partial_results["intent"] is not intent

    def test_stack_trace_from_exception(self):
        try:
            raise RuntimeError("kaboom")
        except RuntimeError as e:
            ctx = _ctx(exc=e)
        assert "RuntimeError: kaboom" in ctx.stack_trace

    def test_registry_miss_suggestion_names_tool(self):
        suggestions = build_suggestions(ErrorKind.TOOL_REGISTRY_MISS, "entity_extraction", "extract_entities")
        assert suggestions[0] == "Verify that the tool 'extract_entities' is registered before the pipeline runs"
        assert suggestions[-1].startswith("Include concrete details")

    def test_to_dict_is_json_serialisable(self):
        ctx = _ctx(partial={"intent": IntentClassification(intent="AI_ANALYSIS", confidence=0.6)})
        data = json.loads(json.dumps(ctx.to_dict()))
        assert data["errorType"] == "llm_error"
        assert data["partialResults"]["intent"]["intent"] == "AI_ANALYSIS"

    def test_pipeline_error_message(self):
        err = PipelineError(_ctx(message="no workflow"))
        assert str(err) == "no workflow"
        assert err.kind is ErrorKind.LLM_ERROR


class TestReporting:
    def test_user_format(self):
        text = format_for_user(_ctx(partial={"intent": IntentClassification("WEB_SCRAPING", 0.7)}))
        assert text.splitlines()[0] == "Error occurred during workflow_generation"
        assert "Tool: generate_workflow" in text
        assert "Session: session_1_abc" in text
        assert "   - intent: IntentClassification" in text

    def test_developer_format_is_json(self):
        data = json.loads(format_for_developer(_ctx()))
        assert data["stage"] == "workflow_generation"

    def test_recoverable_allow_list(self):
        assert is_recoverable(_ctx(ErrorKind.CACHE_ERROR))
        assert is_recoverable(_ctx(ErrorKind.VALIDATION_ERROR))
        assert not is_recoverable(_ctx(ErrorKind.LLM_ERROR))
        assert not is_recoverable(_ctx(ErrorKind.TOOL_REGISTRY_MISS))

    def test_retry_table(self):
        expected = {
            ErrorKind.TOOL_REGISTRY_MISS: (False, 0),
            ErrorKind.TOOL_EXECUTION_FAILURE: (True, 1000),
            ErrorKind.LLM_ERROR: (True, 2000),
            ErrorKind.VALIDATION_ERROR: (False, 0),
            ErrorKind.CACHE_ERROR: (True, 0),
            ErrorKind.UNKNOWN: (True, 5000),
        }
        for kind, (should_retry, delay) in expected.items():
            rec = retry_recommendation(_ctx(kind))
            assert (rec.should_retry, rec.delay_ms) == (should_retry, delay), kind

    def test_support_report_impact(self):
        with_partial = support_report(_ctx(partial={"intent": "x"}))
        without = support_report(_ctx())
        assert with_partial.user_impact.startswith("Partial workflow generated")
        assert without.user_impact == "Workflow generation failed"
        assert without.recommended_actions[-2:] == [
            "Check system logs for additional context",
            "Verify external service availability",
        ]
        assert without.summary == "Error in workflow_generation during llm_error"
