"""Tolerant JSON parsing for generation-backend output.

LLMs wrap JSON in code fences, leave trailing commas, use single quotes or get
truncated. parse_llm_json() tries progressively more forgiving strategies and
returns a tagged result instead of raising:

    StructuredOutput(value, strategy)      — a JSON object/array was recovered
    UnstructuredOutput(raw_text, reason)   — nothing usable; caller decides

Callers branch on the tag (isinstance / match) and route the Unstructured case
to the deterministic heuristics explicitly. A JSON decode error never picks the
code path on its own.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger("workflow_copilot.parsing")

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_REPEATED_COMMA = re.compile(r",\s*,+")
_BARE_KEY = re.compile(r"([{,])\s*([A-Za-z_][A-Za-z0-9_]*)\s*:")
_SINGLE_QUOTED = re.compile(r"'([^'\n]*?)'")
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_LINE_COMMENT = re.compile(r"(?<![:\"'])//[^\n]*")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class StructuredOutput:
    """Backend content that parsed into a JSON value."""

    value: Any
    strategy: str = "direct"


@dataclass(frozen=True)
class UnstructuredOutput:
    """Backend content that could not be interpreted as JSON."""

    raw_text: str
    reason: str


ParsedOutput = Union[StructuredOutput, UnstructuredOutput]


def _strip_fences(text: str) -> str:
    cleaned = text.strip().lstrip("\ufeff")
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def _repair(text: str) -> str:
    """Fix the structural mistakes LLMs make most often."""
    repaired = _strip_fences(text)
    repaired = _BLOCK_COMMENT.sub("", repaired)
    repaired = _LINE_COMMENT.sub("", repaired)
    repaired = _TRAILING_COMMA.sub(r"\1", repaired)
    repaired = _REPEATED_COMMA.sub(",", repaired)
    repaired = _BARE_KEY.sub(r'\1"\2":', repaired)
    repaired = _SINGLE_QUOTED.sub(r'"\1"', repaired)
    return repaired


def _try_load(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return False, None


def parse_llm_json(content: str | None) -> ParsedOutput:
    """Parse backend content into a tagged result.

    Strategy order (first success wins):
      1. direct   — json.loads on the raw text
      2. cleaned  — code fences and BOM stripped
      3. repaired — trailing commas, comments, bare keys, single quotes fixed
      4. extracted — outermost {...} or [...] span pulled out of prose, then repaired
    """
    if content is None or not content.strip():
        return UnstructuredOutput(raw_text=content or "", reason="empty response")

    ok, value = _try_load(content)
    if ok:
        return StructuredOutput(value, "direct")

    ok, value = _try_load(_strip_fences(content))
    if ok:
        return StructuredOutput(value, "cleaned")

    ok, value = _try_load(_repair(content))
    if ok:
        return StructuredOutput(value, "repaired")

    cleaned = _strip_fences(content)
    for pattern in (_OBJECT_SPAN, _ARRAY_SPAN):
        match = pattern.search(cleaned)
        if match:
            ok, value = _try_load(_repair(match.group(0)))
            if ok:
                return StructuredOutput(value, "extracted")

    logger.debug("Backend content is not JSON (%d chars)", len(content))
    return UnstructuredOutput(raw_text=content, reason="no JSON document found")


def expect_object(parsed: ParsedOutput, required: tuple[str, ...] = ()) -> ParsedOutput:
    """Narrow a StructuredOutput to a JSON object carrying the required keys.

    Anything else is downgraded to UnstructuredOutput so the caller has one
    branch to handle for "not what we asked for".
    """
    if isinstance(parsed, UnstructuredOutput):
        return parsed
    if not isinstance(parsed.value, dict):
        return UnstructuredOutput(
            raw_text=json.dumps(parsed.value, default=str),
            reason=f"expected a JSON object, got {type(parsed.value).__name__}",
        )
    missing = [k for k in required if k not in parsed.value]
    if missing:
        return UnstructuredOutput(
            raw_text=json.dumps(parsed.value, default=str),
            reason=f"missing keys: {', '.join(missing)}",
        )
    return parsed
