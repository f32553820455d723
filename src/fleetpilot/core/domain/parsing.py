"""Parsing helpers for model generated decision payloads."""

import json
from dataclasses import dataclass
from typing import Any

from fleetpilot.core.domain.actions import AgentResponse, Fail, Observe, Wait

PARSE_FALLBACK_CONFIDENCE = 0.3
UNAVAILABLE_CONFIDENCE = 0.1


def iter_json_objects(text: str):
    """
    Yield every balanced ``{...}`` span in ``text`` in order of appearance.

    Braces inside JSON strings (including escaped quotes) are ignored, so
    reasoning text such as ``"click the {login} button"`` does not break the
    scan. Unbalanced trailing spans are skipped.
    """
    start = -1
    depth = 0
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:index + 1]


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Return the first balanced JSON object in free text, or None."""
    if not text:
        return None
    for candidate in iter_json_objects(text):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


@dataclass
class ParseOutcome:
    """
    Result of parsing a decision payload.

    ``response`` is always usable. ``error`` is set when the response was
    synthesized because the text held no valid decision.
    """

    response: AgentResponse
    error: str | None = None

    @property
    def synthesized(self) -> bool:
        return self.error is not None


def fallback_response(reason: str) -> AgentResponse:
    """Neutral low-confidence response that keeps the session moving."""
    return AgentResponse(
        action=Observe(),
        reasoning=f"Parse error - retrying ({reason})",
        confidence=PARSE_FALLBACK_CONFIDENCE,
        goal_progress=0,
        goal_achieved=False,
        requires_verification=False,
        synthesized=True,
    )


def unavailable_response(reason: str, terminal: bool = False) -> AgentResponse:
    """Response used when no model answered the decision call."""
    if terminal:
        action = Fail(reason=f"No model available: {reason}")
    else:
        action = Observe()
    return AgentResponse(
        action=action,
        reasoning=f"Model unavailable - {reason}",
        confidence=UNAVAILABLE_CONFIDENCE,
        goal_progress=0,
        goal_achieved=False,
        synthesized=True,
    )


def paused_response(status: str, wait_ms: int) -> AgentResponse:
    """Response returned when the session stopped running mid-decision."""
    return AgentResponse(
        action=Wait(duration_ms=wait_ms),
        reasoning=f"Session is {status}; decision discarded",
        confidence=0.0,
        goal_progress=0,
        goal_achieved=False,
        synthesized=True,
    )


def parse_agent_response(text: str | None) -> ParseOutcome:
    """
    Parse model output permissively into an AgentResponse.

    The first balanced JSON object that yields a valid action wins. When no
    such object exists a synthesized observe response is returned instead of
    raising.
    """
    if not text or not text.strip():
        return ParseOutcome(fallback_response("empty response"), error="empty response")

    last_error = "no JSON object found"
    for candidate in iter_json_objects(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = f"invalid JSON: {e.msg}"
            continue
        if not isinstance(data, dict) or "action" not in data:
            last_error = "JSON object has no action"
            continue
        try:
            return ParseOutcome(AgentResponse.from_dict(data))
        except (ValueError, TypeError, OverflowError) as e:
            last_error = str(e)

    return ParseOutcome(fallback_response(last_error), error=last_error)
