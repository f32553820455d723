"""
Model Routing

Cost-aware selection of the model that answers each task class.

Selection for one task class:
1. Keep catalog entries offering every required capability
2. Drop entries above the input price ceiling (if one is set)
3. Sort by combined input+output price, larger context first on ties
4. Prefer entries the reliability policy trusts
5. Primary is the first preferred entry, fallback the second

The optimization pass applies the selection to every auto-update task
class and reports the input price savings against the current primary.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable

import structlog

from fleetpilot.core.domain.catalog import Capability, ModelCacheEntry, ModelCatalog

logger = structlog.get_logger()

RULE_BASED_PROVIDERS = ("local", "ollama")


@dataclass(frozen=True)
class ReliabilityPolicy:
    """
    Decides which cheap models are trusted as primary.

    A model is reliable when its input price is above ``min_input_price`` or
    its id contains one of ``trusted_families``. Both values are policy
    inputs loaded from configuration.
    """

    min_input_price: float = 0.001
    trusted_families: tuple[str, ...] = ("gemini", "deepseek", "qwen")

    def is_reliable(self, entry: ModelCacheEntry) -> bool:
        if entry.pricing_input > self.min_input_price:
            return True
        model_id = entry.id.lower()
        return any(family.lower() in model_id for family in self.trusted_families)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ReliabilityPolicy":
        data = data or {}
        return cls(
            min_input_price=float(data.get("min_input_price", 0.001)),
            trusted_families=tuple(data.get("trusted_families", ("gemini", "deepseek", "qwen"))),
        )


@dataclass
class TaskModelConfig:
    """
    Routing and invocation settings for one task class.

    Attributes:
        task_type: Task class name (execution, vision, bot_generation, ...)
        primary_model: Model answering the class
        fallback_model: Model tried once when the primary call fails
        max_price_per_million_input: Optional input price ceiling
        required_capabilities: Capabilities every candidate must offer
        auto_update: Whether the optimizer may rewrite primary/fallback
        provider: openrouter, openai, local or ollama
        cost_per_1k_tokens: Flat cost used for usage telemetry
        max_tokens: Completion token limit
        temperature: Sampling temperature
        custom_endpoint: Base URL for self-hosted providers
        is_active: Inactive classes never call a model
        last_checked_at: Last time the optimizer looked at this class
        last_updated_at: Last time the optimizer changed this class
    """

    task_type: str
    primary_model: str | None = None
    fallback_model: str | None = None
    max_price_per_million_input: float | None = None
    required_capabilities: list[str] = field(default_factory=list)
    auto_update: bool = True
    provider: str = "openrouter"
    cost_per_1k_tokens: float = 0.0
    max_tokens: int = 1024
    temperature: float = 0.3
    custom_endpoint: str | None = None
    is_active: bool = True
    last_checked_at: datetime | None = None
    last_updated_at: datetime | None = None

    @property
    def is_rule_based(self) -> bool:
        """True when the class must run without calling any endpoint."""
        return self.provider in RULE_BASED_PROVIDERS and not self.custom_endpoint

    @classmethod
    def from_dict(cls, task_type: str, data: dict[str, Any]) -> "TaskModelConfig":
        """
        Raises:
            ValueError: If a required capability is unknown
        """
        capabilities = list(data.get("required_capabilities") or [])
        known = {c.value for c in Capability}
        unknown = [c for c in capabilities if c not in known]
        if unknown:
            raise ValueError(
                f"Task class '{task_type}' requires unknown capabilities: {', '.join(unknown)}"
            )
        ceiling = data.get("max_price_per_million_input")
        return cls(
            task_type=task_type,
            primary_model=data.get("primary_model"),
            fallback_model=data.get("fallback_model"),
            max_price_per_million_input=None if ceiling is None else float(ceiling),
            required_capabilities=capabilities,
            auto_update=bool(data.get("auto_update", True)),
            provider=data.get("provider", "openrouter"),
            cost_per_1k_tokens=float(data.get("cost_per_1k_tokens", 0.0)),
            max_tokens=int(data.get("max_tokens", 1024)),
            temperature=float(data.get("temperature", 0.3)),
            custom_endpoint=data.get("custom_endpoint"),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass(frozen=True)
class ModelSelection:
    primary: str | None
    fallback: str | None

    @property
    def is_empty(self) -> bool:
        return self.primary is None


def rank_candidates(
    catalog: Iterable[ModelCacheEntry],
    required_capabilities: Iterable[str] = (),
    max_price_input: float | None = None,
) -> list[ModelCacheEntry]:
    """Filter by capability and price ceiling, cheapest-and-largest first."""
    required = set(required_capabilities)
    candidates = [entry for entry in catalog if entry.has_capabilities(required)]

    if max_price_input is not None:
        candidates = [e for e in candidates if e.pricing_input <= max_price_input]

    candidates.sort(key=lambda e: (e.combined_price, -e.context_length, e.id))
    return candidates


def select_models(
    catalog: Iterable[ModelCacheEntry],
    required_capabilities: Iterable[str] = (),
    max_price_input: float | None = None,
    policy: ReliabilityPolicy | None = None,
) -> ModelSelection:
    """
    Pick primary and fallback models.

    Returns a selection with both ids set to None when no entry satisfies
    the capability and price filters.
    """
    policy = policy or ReliabilityPolicy()
    candidates = rank_candidates(catalog, required_capabilities, max_price_input)
    reliable = [entry for entry in candidates if policy.is_reliable(entry)]

    def pick(position: int) -> str | None:
        if len(reliable) > position:
            return reliable[position].id
        if len(candidates) > position:
            return candidates[position].id
        return None

    return ModelSelection(primary=pick(0), fallback=pick(1))


def format_savings(current: ModelCacheEntry | None, new: ModelCacheEntry | None) -> str:
    """Input price savings of ``new`` over ``current`` as a percentage string."""
    if current is None or new is None or current.pricing_input == 0:
        return "0%"
    savings = (current.pricing_input - new.pricing_input) / current.pricing_input * 100
    return f"{savings:.1f}%"


@dataclass
class Recommendation:
    task_type: str
    current_primary: str | None
    recommended_primary: str | None
    recommended_fallback: str | None
    price_savings: str
    updated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_type": self.task_type,
            "current_primary": self.current_primary,
            "recommended_primary": self.recommended_primary,
            "recommended_fallback": self.recommended_fallback,
            "price_savings": self.price_savings,
            "updated": self.updated,
        }


class ModelRouter:
    """
    Selects models per task class against an explicit catalog snapshot.

    The router holds no catalog itself; every call receives the snapshot it
    must decide on.
    """

    def __init__(self, policy: ReliabilityPolicy | None = None):
        self.policy = policy or ReliabilityPolicy()
        self.logger = logger.bind(component="model_router")

    def select(
        self, task_type: str, catalog: ModelCatalog, config: TaskModelConfig
    ) -> ModelSelection:
        selection = select_models(
            catalog,
            config.required_capabilities,
            config.max_price_per_million_input,
            self.policy,
        )
        if selection.is_empty:
            self.logger.warning(
                "no_eligible_model",
                task_type=task_type,
                required_capabilities=config.required_capabilities,
                max_price=config.max_price_per_million_input,
                catalog_version=catalog.version,
            )
        return selection

    def optimize(
        self,
        configs: Iterable[TaskModelConfig],
        catalog: ModelCatalog,
        apply: bool = True,
        now: datetime | None = None,
    ) -> tuple[list[Recommendation], list[TaskModelConfig]]:
        """
        Recompute the selection for every auto-update task class.

        Args:
            configs: Current task class configurations
            catalog: Catalog snapshot to decide on
            apply: Write changed primary/fallback models into the configs
            now: Timestamp used for last_checked_at/last_updated_at

        Returns:
            Tuple of (recommendations, configs to persist). Every examined
            config is returned because last_checked_at always advances.
        """
        now = now or datetime.now(timezone.utc)
        recommendations: list[Recommendation] = []
        touched: list[TaskModelConfig] = []

        for config in configs:
            if not config.auto_update:
                continue

            selection = self.select(config.task_type, catalog, config)
            recommendation = Recommendation(
                task_type=config.task_type,
                current_primary=config.primary_model,
                recommended_primary=selection.primary,
                recommended_fallback=selection.fallback,
                price_savings=format_savings(
                    catalog.get(config.primary_model), catalog.get(selection.primary)
                ),
            )

            needs_update = bool(selection.primary) and selection.primary != config.primary_model
            if apply and needs_update:
                updated = replace(
                    config,
                    primary_model=selection.primary,
                    fallback_model=selection.fallback,
                    last_checked_at=now,
                    last_updated_at=now,
                )
                recommendation.updated = True
                self.logger.info(
                    "task_model_updated",
                    task_type=config.task_type,
                    previous=config.primary_model,
                    primary=selection.primary,
                    fallback=selection.fallback,
                    savings=recommendation.price_savings,
                )
            else:
                updated = replace(config, last_checked_at=now)

            recommendations.append(recommendation)
            touched.append(updated)

        return recommendations, touched
