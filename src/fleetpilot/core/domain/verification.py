"""
Rule-Based Verification

Deterministic checks of whether an action's claimed effect actually happened.
No model is involved: every criterion is evaluated against the before/after
snapshots, DOM diff and network log reported by the runner.

Criterion types and the confidence granted when they pass:

- url_contains: after_state.url contains the value (1.0)
- element_visible: value found in dom_changes.added or after_state.visible_elements (0.9)
- element_hidden: value found in dom_changes.removed (0.9)
- text_appears: after_state.page_text contains the value (0.95)
- network_request: any request URL contains the value (1.0)
- dom_change: dom_changes.added or dom_changes.modified is non-empty (0.8)

A failed criterion always scores 0.0.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class CriterionType(str, Enum):
    """Kind of verification check."""

    URL_CONTAINS = "url_contains"
    ELEMENT_VISIBLE = "element_visible"
    ELEMENT_HIDDEN = "element_hidden"
    TEXT_APPEARS = "text_appears"
    NETWORK_REQUEST = "network_request"
    DOM_CHANGE = "dom_change"


PASS_CONFIDENCE: dict[CriterionType, float] = {
    CriterionType.URL_CONTAINS: 1.0,
    CriterionType.ELEMENT_VISIBLE: 0.9,
    CriterionType.ELEMENT_HIDDEN: 0.9,
    CriterionType.TEXT_APPEARS: 0.95,
    CriterionType.NETWORK_REQUEST: 1.0,
    CriterionType.DOM_CHANGE: 0.8,
}


@dataclass(frozen=True)
class VerificationCriterion:
    type: CriterionType
    value: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationCriterion":
        """
        Raises:
            ValueError: If the criterion type is unknown
        """
        value = data.get("value")
        return cls(
            type=CriterionType(data.get("type")),
            value="" if value is None else str(value),
        )


@dataclass
class CriterionResult:
    type: str
    value: str
    passed: bool
    confidence: float


@dataclass
class VerificationResult:
    """
    Outcome of a verification round.

    Attributes:
        verified: True when every criterion passed (vacuously true if none)
        confidence: Mean of the per-criterion confidences (1.0 if none)
        results: One entry per criterion, in input order
    """

    verified: bool
    confidence: float
    results: list[CriterionResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "confidence": self.confidence,
            "results": [asdict(r) for r in self.results],
        }


def _strings(items: Any) -> list[str]:
    if not isinstance(items, (list, tuple)):
        return []
    return [item if isinstance(item, str) else str(item) for item in items]


def _any_contains(items: Any, needle: str) -> bool:
    return any(needle in item for item in _strings(items))


def _request_urls(network_requests: Any) -> list[str]:
    urls = []
    for request in network_requests or []:
        if isinstance(request, dict):
            url = request.get("url")
        else:
            url = request
        if isinstance(url, str):
            urls.append(url)
    return urls


def check_criterion(
    criterion: VerificationCriterion,
    after_state: dict[str, Any],
    dom_changes: dict[str, Any],
    network_requests: list[Any],
) -> bool:
    value = criterion.value
    kind = criterion.type

    if kind == CriterionType.URL_CONTAINS:
        url = after_state.get("url")
        return isinstance(url, str) and value in url
    if kind == CriterionType.ELEMENT_VISIBLE:
        return _any_contains(dom_changes.get("added"), value) or _any_contains(
            after_state.get("visible_elements"), value
        )
    if kind == CriterionType.ELEMENT_HIDDEN:
        return _any_contains(dom_changes.get("removed"), value)
    if kind == CriterionType.TEXT_APPEARS:
        text = after_state.get("page_text")
        return isinstance(text, str) and value in text
    if kind == CriterionType.NETWORK_REQUEST:
        return any(value in url for url in _request_urls(network_requests))
    if kind == CriterionType.DOM_CHANGE:
        return bool(_strings(dom_changes.get("added")) or _strings(dom_changes.get("modified")))
    raise ValueError(f"Unhandled criterion type: {kind}")


def evaluate_criteria(
    criteria: list[VerificationCriterion],
    before_state: dict[str, Any] | None = None,
    after_state: dict[str, Any] | None = None,
    dom_changes: dict[str, Any] | None = None,
    network_requests: list[Any] | None = None,
) -> VerificationResult:
    """
    Score criteria against the runner supplied snapshots.

    ``before_state`` is accepted for the audit trail; none of the current
    rules compare against it.
    """
    after_state = after_state or {}
    dom_changes = dom_changes or {}
    network_requests = network_requests or []

    results = []
    for criterion in criteria:
        passed = check_criterion(criterion, after_state, dom_changes, network_requests)
        results.append(
            CriterionResult(
                type=criterion.type.value,
                value=criterion.value,
                passed=passed,
                confidence=PASS_CONFIDENCE[criterion.type] if passed else 0.0,
            )
        )

    if not results:
        return VerificationResult(verified=True, confidence=1.0, results=[])

    return VerificationResult(
        verified=all(r.passed for r in results),
        confidence=sum(r.confidence for r in results) / len(results),
        results=results,
    )
