"""
Application Layer - Model Optimizer

Keeps task class routing current with the pricing catalog:

- refresh: pull a new catalog snapshot from OpenRouter and store it
- check: compute recommendations without changing any task class
- optimize: compute recommendations and apply changed primaries
"""

from typing import Any

import structlog

from fleetpilot.core.domain.catalog import Capability, ModelCatalog
from fleetpilot.core.domain.routing import ModelRouter, Recommendation
from fleetpilot.core.interfaces.storage import EngineStoreProtocol
from fleetpilot.infrastructure.catalog.openrouter_catalog import OpenRouterCatalogSource

TOP_VISION_MODELS = 10


def format_price(price_per_million: float) -> str:
    return f"${price_per_million:.4f}/M"


class ModelOptimizer:
    """Catalog refresh and cost optimization of task class routing."""

    def __init__(
        self,
        store: EngineStoreProtocol,
        router: ModelRouter | None = None,
        catalog_source: OpenRouterCatalogSource | None = None,
    ):
        self.store = store
        self.router = router or ModelRouter()
        self.catalog_source = catalog_source or OpenRouterCatalogSource()
        self.logger = structlog.get_logger().bind(component="model_optimizer")

    async def refresh(self) -> dict[str, Any]:
        """
        Replace the stored catalog with a fresh OpenRouter snapshot.

        Raises:
            CatalogFetchError: If the listing cannot be retrieved
        """
        previous = await self.store.get_catalog()
        catalog = await self.catalog_source.fetch(previous)
        await self.store.save_catalog(catalog)
        return {
            "success": True,
            "models_cached": len(catalog),
            "catalog_version": catalog.version,
            "message": f"Cached {len(catalog)} models (catalog v{catalog.version})",
        }

    async def check(self) -> dict[str, Any]:
        """Recommendations against the stored catalog; primaries stay unchanged."""
        return await self._run(apply=False)

    async def optimize(self) -> dict[str, Any]:
        """Apply the recommended primary/fallback models."""
        return await self._run(apply=True)

    async def _run(self, apply: bool) -> dict[str, Any]:
        catalog = await self.store.get_catalog()
        configs = await self.store.list_task_configs()

        recommendations, touched = self.router.optimize(configs, catalog, apply=apply)
        for config in touched:
            await self.store.save_task_config(config)

        updated = sum(1 for r in recommendations if r.updated)
        self.logger.info(
            "models_optimized" if apply else "models_checked",
            task_classes=len(recommendations),
            updated=updated,
            catalog_version=catalog.version,
        )
        return self._report(catalog, recommendations, apply, updated)

    @staticmethod
    def _report(
        catalog: ModelCatalog,
        recommendations: list[Recommendation],
        applied: bool,
        updated: int,
    ) -> dict[str, Any]:
        top_vision = [
            {
                "id": entry.id,
                "price_input": format_price(entry.pricing_input),
                "price_output": format_price(entry.pricing_output),
                "context_length": entry.context_length,
            }
            for entry in catalog.cheapest_with(Capability.VISION.value, TOP_VISION_MODELS)
        ]
        if applied:
            message = f"Updated {updated} of {len(recommendations)} task classes"
        else:
            pending = sum(
                1
                for r in recommendations
                if r.recommended_primary and r.recommended_primary != r.current_primary
            )
            message = f"{pending} of {len(recommendations)} task classes can be optimized"

        return {
            "success": True,
            "applied": applied,
            "models_cached": len(catalog),
            "catalog_version": catalog.version,
            "recommendations": [r.to_dict() for r in recommendations],
            "top_vision_models": top_vision,
            "message": message,
        }
