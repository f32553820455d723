"""
Browser Actions and Agent Responses

This module defines the action protocol exchanged with the browser runner.
Every decision produces exactly one action. Each action kind is its own
dataclass so the runner (and the engine's side effects) can dispatch on the
class instead of on loosely typed dictionaries:

- Navigate: open a URL
- Click: click at screen coordinates (optionally with a CSS selector hint)
- TypeText: type text into the focused element or a selector
- Scroll: scroll the page up or down
- Wait: pause for a number of milliseconds
- Observe: take a fresh screenshot without touching the page
- Complete: the goal is reached (may carry agent generated data)
- Fail: the agent gives up with a reason

The wire format matches what the runner executes:
``{"type": "click", "coordinates": {"x": 10, "y": 20}}``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ActionType(str, Enum):
    """Type of action the runner can execute."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    WAIT = "wait"
    OBSERVE = "observe"
    COMPLETE = "complete"
    FAIL = "fail"


# Older runners call the observe step "screenshot".
_TYPE_ALIASES = {"screenshot": ActionType.OBSERVE}


@dataclass(frozen=True)
class Navigate:
    url: str

    type = ActionType.NAVIGATE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "url": self.url}


@dataclass(frozen=True)
class Click:
    x: int | None = None
    y: int | None = None
    selector: str | None = None

    type = ActionType.CLICK

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.x is not None and self.y is not None:
            data["coordinates"] = {"x": self.x, "y": self.y}
        if self.selector:
            data["selector"] = self.selector
        return data


@dataclass(frozen=True)
class TypeText:
    text: str
    selector: str | None = None

    type = ActionType.TYPE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "text": self.text}
        if self.selector:
            data["selector"] = self.selector
        return data


@dataclass(frozen=True)
class Scroll:
    direction: str = "down"
    amount: int = 300

    type = ActionType.SCROLL

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "direction": self.direction,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class Wait:
    duration_ms: int = 1000

    type = ActionType.WAIT

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "amount": self.duration_ms}


@dataclass(frozen=True)
class Observe:
    type = ActionType.OBSERVE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value}


@dataclass(frozen=True)
class Complete:
    reason: str = ""
    generated_data: dict[str, Any] = field(default_factory=dict)

    type = ActionType.COMPLETE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "reason": self.reason}
        if self.generated_data:
            data["generated_data"] = dict(self.generated_data)
        return data


@dataclass(frozen=True)
class Fail:
    reason: str = ""

    type = ActionType.FAIL

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "reason": self.reason}


Action = Union[Navigate, Click, TypeText, Scroll, Wait, Observe, Complete, Fail]


def _as_int(value: Any, default: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def action_from_dict(data: dict[str, Any]) -> Action:
    """
    Build an action from its wire representation.

    Args:
        data: Dictionary with a ``type`` key plus the variant's fields

    Returns:
        The matching action variant

    Raises:
        ValueError: If the type is unknown or a required field is missing
    """
    if not isinstance(data, dict):
        raise ValueError(f"Action must be an object, got {type(data).__name__}")

    raw_type = str(data.get("type", "")).strip().lower()
    action_type = _TYPE_ALIASES.get(raw_type)
    if action_type is None:
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            raise ValueError(f"Unknown action type: {raw_type!r}") from None

    if action_type == ActionType.NAVIGATE:
        url = data.get("url")
        if not url:
            raise ValueError("navigate action requires 'url'")
        return Navigate(url=str(url))

    if action_type == ActionType.CLICK:
        coords = data.get("coordinates") or {}
        if not isinstance(coords, dict):
            coords = {}
        x = _as_int(coords.get("x", data.get("x")))
        y = _as_int(coords.get("y", data.get("y")))
        selector = data.get("selector") or None
        if (x is None or y is None) and not selector:
            raise ValueError("click action requires coordinates or a selector")
        return Click(x=x, y=y, selector=selector)

    if action_type == ActionType.TYPE:
        text = data.get("text")
        if text is None:
            raise ValueError("type action requires 'text'")
        return TypeText(text=str(text), selector=data.get("selector") or None)

    if action_type == ActionType.SCROLL:
        direction = str(data.get("direction") or "down").lower()
        if direction not in ("up", "down"):
            direction = "down"
        return Scroll(direction=direction, amount=_as_int(data.get("amount"), 300))

    if action_type == ActionType.WAIT:
        duration = data.get("duration_ms", data.get("amount", data.get("duration")))
        return Wait(duration_ms=max(0, _as_int(duration, 1000)))

    if action_type == ActionType.OBSERVE:
        return Observe()

    if action_type == ActionType.COMPLETE:
        generated = data.get("generated_data")
        return Complete(
            reason=str(data.get("reason") or ""),
            generated_data=generated if isinstance(generated, dict) else {},
        )

    return Fail(reason=str(data.get("reason") or "Agent reported failure"))


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


@dataclass
class AgentResponse:
    """
    Parsed output of one decision iteration.

    Attributes:
        action: The single action the runner must execute next
        reasoning: Short explanation produced by the model
        confidence: Model confidence in the decision (0.0-1.0)
        goal_progress: Self reported progress towards the goal (0-100)
        goal_achieved: Whether the model considers the goal reached
        requires_verification: Whether the runner should check the criteria
        verification_criteria: Criteria dictionaries (type/value) for the runner
        generated_data: Data the agent fabricated during the flow
            (e.g. credentials for a self registration)
        synthesized: True when the engine produced this response itself
            instead of parsing model output
    """

    action: Action
    reasoning: str = ""
    confidence: float = 0.0
    goal_progress: int = 0
    goal_achieved: bool = False
    requires_verification: bool = False
    verification_criteria: list[dict[str, Any]] = field(default_factory=list)
    generated_data: dict[str, Any] = field(default_factory=dict)
    synthesized: bool = False

    @property
    def is_success(self) -> bool:
        return self.goal_achieved or isinstance(self.action, Complete)

    @property
    def is_failure(self) -> bool:
        return isinstance(self.action, Fail) and not self.goal_achieved

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentResponse":
        """
        Build a response from the model's JSON object.

        Raises:
            ValueError: If the action is missing or invalid
        """
        action_data = data.get("action")
        if isinstance(action_data, str):
            action_data = {"type": action_data}
        action = action_from_dict(action_data)

        generated: dict[str, Any] = {}
        if isinstance(action, Complete):
            generated.update(action.generated_data)
        if isinstance(data.get("generated_data"), dict):
            generated.update(data["generated_data"])

        raw_criteria = data.get("verification_criteria")
        if not isinstance(raw_criteria, list):
            raw_criteria = []
        criteria = [c for c in raw_criteria if isinstance(c, dict) and c.get("type")]

        return cls(
            action=action,
            reasoning=str(data.get("reasoning") or ""),
            confidence=_clamp(data.get("confidence"), 0.0, 1.0, 0.5),
            goal_progress=int(_clamp(data.get("goal_progress"), 0, 100, 0)),
            goal_achieved=bool(data.get("goal_achieved", False)),
            requires_verification=bool(data.get("requires_verification", bool(criteria))),
            verification_criteria=criteria,
            generated_data=generated,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "goal_progress": self.goal_progress,
            "goal_achieved": self.goal_achieved,
            "requires_verification": self.requires_verification,
            "verification_criteria": list(self.verification_criteria),
            "generated_data": dict(self.generated_data),
        }
