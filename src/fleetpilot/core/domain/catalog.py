"""
Model Catalog

Priced, capability-tagged inventory of completion models. A catalog is an
immutable snapshot: refreshing produces a new ``ModelCatalog`` with a higher
version instead of mutating the current one, so a routing decision always
works on one consistent view even while a refresh is in progress.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable


class Capability(str, Enum):
    """Capability a model may offer."""

    VISION = "vision"
    TOOLS = "tools"
    STREAMING = "streaming"
    EMBEDDING = "embedding"


@dataclass(frozen=True)
class ModelCacheEntry:
    """
    One catalog entry.

    Prices are normalized to USD per million tokens.
    """

    id: str
    pricing_input: float
    pricing_output: float
    context_length: int = 0
    capabilities: frozenset[str] = field(default_factory=frozenset)
    name: str = ""
    is_free: bool = False

    @property
    def combined_price(self) -> float:
        return self.pricing_input + self.pricing_output

    def has_capabilities(self, required: Iterable[str]) -> bool:
        return set(required).issubset(self.capabilities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "pricing_input": self.pricing_input,
            "pricing_output": self.pricing_output,
            "context_length": self.context_length,
            "capabilities": sorted(self.capabilities),
            "is_free": self.is_free,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelCacheEntry":
        pricing_input = float(data.get("pricing_input") or 0)
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            pricing_input=pricing_input,
            pricing_output=float(data.get("pricing_output") or 0),
            context_length=int(data.get("context_length") or 0),
            capabilities=frozenset(data.get("capabilities") or ()),
            is_free=bool(data.get("is_free", pricing_input == 0)),
        )


@dataclass(frozen=True)
class ModelCatalog:
    """Versioned, read-only snapshot of the model inventory."""

    entries: tuple[ModelCacheEntry, ...] = ()
    version: int = 0
    fetched_at: datetime | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def get(self, model_id: str | None) -> ModelCacheEntry | None:
        if not model_id:
            return None
        for entry in self.entries:
            if entry.id == model_id:
                return entry
        return None

    def with_entries(self, entries: Iterable[ModelCacheEntry]) -> "ModelCatalog":
        """Return the next snapshot version holding ``entries``."""
        return ModelCatalog(
            entries=tuple(entries),
            version=self.version + 1,
            fetched_at=datetime.now(timezone.utc),
        )

    def cheapest_with(self, capability: str, limit: int = 10) -> list[ModelCacheEntry]:
        matching = [e for e in self.entries if capability in e.capabilities]
        matching.sort(key=lambda e: (e.pricing_input, e.id))
        return matching[:limit]


def detect_capabilities(model: dict[str, Any]) -> frozenset[str]:
    """
    Detect capabilities from OpenRouter model metadata.

    The pricing API does not list capabilities reliably, so the id, the name
    and the declared input modalities are matched against known families.
    """
    model_id = str(model.get("id", "")).lower()
    name = str(model.get("name", "")).lower()
    architecture = model.get("architecture")
    if not isinstance(architecture, dict):
        architecture = {}
    input_modalities = architecture.get("input_modalities") or []
    if not isinstance(input_modalities, list):
        input_modalities = []

    capabilities = set()

    if (
        "image" in input_modalities
        or "vision" in model_id
        or "-vl-" in model_id
        or "vl-" in model_id
        or "vision" in name
        or "gpt-4o" in model_id
        or "gemini" in model_id
    ):
        capabilities.add(Capability.VISION.value)

    if any(family in model_id for family in ("gpt-4", "claude", "gemini", "qwen", "deepseek")):
        capabilities.add(Capability.TOOLS.value)

    if "embedding" not in model_id:
        capabilities.add(Capability.STREAMING.value)

    if "embedding" in model_id or "embed" in model_id:
        capabilities.add(Capability.EMBEDDING.value)

    return frozenset(capabilities)


def _per_million(raw: Any) -> float:
    try:
        return float(raw) * 1_000_000
    except (TypeError, ValueError):
        return 0.0


def entry_from_openrouter(model: dict[str, Any]) -> ModelCacheEntry:
    """
    Convert one OpenRouter ``/models`` item into a catalog entry.

    Raises:
        ValueError: If ``context_length`` is not a finite number
    """
    pricing = model.get("pricing")
    if not isinstance(pricing, dict):
        pricing = {}
    try:
        context_length = int(float(model.get("context_length") or 0))
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"invalid context_length: {model.get('context_length')!r}") from e
    pricing_input = _per_million(pricing.get("prompt"))
    return ModelCacheEntry(
        id=str(model["id"]),
        name=model.get("name") or "",
        pricing_input=pricing_input,
        pricing_output=_per_million(pricing.get("completion")),
        context_length=context_length,
        capabilities=detect_capabilities(model),
        is_free=pricing_input == 0,
    )
