"""
Unit tests for ModelOptimizer.
"""

from unittest.mock import AsyncMock

import pytest

from fleetpilot.application.optimizer import ModelOptimizer, format_price
from fleetpilot.core.domain.catalog import ModelCatalog
from fleetpilot.core.domain.routing import TaskModelConfig
from fleetpilot.infrastructure.catalog.openrouter_catalog import CatalogFetchError
from fleetpilot.infrastructure.persistence.memory_store import InMemoryEngineStore


@pytest.fixture
def stale_store(catalog) -> InMemoryEngineStore:
    """Execution still routed to the most expensive model."""
    return InMemoryEngineStore(
        task_configs=[
            TaskModelConfig(task_type="execution", primary_model="vendor/c-vision"),
            TaskModelConfig(
                task_type="vision",
                primary_model="vendor/b-vision",
                fallback_model="vendor/c-vision",
                required_capabilities=["vision"],
            ),
            TaskModelConfig(task_type="verification", provider="local", auto_update=False),
        ],
        catalog=catalog,
    )


@pytest.fixture
def source():
    mock = AsyncMock()
    mock.fetch = AsyncMock()
    return mock


def test_format_price():
    assert format_price(0.1) == "$0.1000/M"
    assert format_price(0) == "$0.0000/M"


@pytest.mark.asyncio
class TestCheckAndOptimize:
    async def test_check_reports_without_applying(self, stale_store, source):
        optimizer = ModelOptimizer(stale_store, catalog_source=source)

        report = await optimizer.check()

        assert report["applied"] is False
        assert report["message"] == "1 of 2 task classes can be optimized"
        execution = next(r for r in report["recommendations"] if r["task_type"] == "execution")
        assert execution["recommended_primary"] == "vendor/a-text"
        assert execution["price_savings"] == "44.4%"
        assert execution["updated"] is False

        stored = await stale_store.get_task_config("execution")
        assert stored.primary_model == "vendor/c-vision"
        assert stored.last_checked_at is not None

    async def test_optimize_applies_cheaper_primary(self, stale_store, source):
        optimizer = ModelOptimizer(stale_store, catalog_source=source)

        report = await optimizer.optimize()

        assert report["applied"] is True
        assert report["message"] == "Updated 1 of 2 task classes"
        stored = await stale_store.get_task_config("execution")
        assert stored.primary_model == "vendor/a-text"
        assert stored.fallback_model == "vendor/b-vision"
        assert stored.last_updated_at is not None
        assert (await stale_store.get_task_config("vision")).last_updated_at is None
        assert (await stale_store.get_task_config("verification")).last_checked_at is None
        source.fetch.assert_not_awaited()

    async def test_top_vision_models_listing(self, stale_store, source):
        report = await ModelOptimizer(stale_store, catalog_source=source).check()

        assert [m["id"] for m in report["top_vision_models"]] == ["vendor/b-vision", "vendor/c-vision"]
        assert report["top_vision_models"][0]["price_input"] == "$0.8000/M"
        assert report["models_cached"] == 3
        assert report["catalog_version"] == 1


@pytest.mark.asyncio
class TestRefresh:
    async def test_refresh_stores_new_snapshot(self, stale_store, source, catalog, make_model):
        fresh = ModelCatalog(entries=(make_model("vendor/d-vision", 0.1, 0.1, 64_000, ("vision",)),), version=2)
        source.fetch.return_value = fresh

        result = await ModelOptimizer(stale_store, catalog_source=source).refresh()

        source.fetch.assert_awaited_once_with(catalog)
        assert result == {
            "success": True,
            "models_cached": 1,
            "catalog_version": 2,
            "message": "Cached 1 models (catalog v2)",
        }
        assert (await stale_store.get_catalog()) is fresh

    async def test_fetch_failure_keeps_previous_catalog(self, stale_store, source, catalog):
        source.fetch.side_effect = CatalogFetchError("OpenRouter returned HTTP 503")

        with pytest.raises(CatalogFetchError):
            await ModelOptimizer(stale_store, catalog_source=source).refresh()

        assert (await stale_store.get_catalog()) is catalog
