"""
Unit tests for cost-aware model routing and optimization.
"""

from datetime import datetime, timezone

import pytest

from fleetpilot.core.domain.catalog import ModelCatalog
from fleetpilot.core.domain.routing import (
    ModelRouter,
    ReliabilityPolicy,
    TaskModelConfig,
    format_savings,
    rank_candidates,
    select_models,
)


class TestSelectModels:
    def test_vision_requirement_with_price_ceiling(self, catalog):
        selection = select_models(catalog, ["vision"], max_price_input=1.0)
        assert selection.primary == "vendor/b-vision"
        assert selection.fallback == "vendor/c-vision"

    def test_no_requirements_matches_all(self, catalog):
        assert select_models(catalog).primary == "vendor/a-text"

    def test_ceiling_excludes_expensive_models(self, catalog):
        selection = select_models(catalog, ["vision"], max_price_input=0.85)
        assert selection.primary == "vendor/b-vision"
        assert selection.fallback is None

    def test_unsatisfiable_returns_empty_selection(self, catalog):
        selection = select_models(catalog, ["embedding"])
        assert selection.is_empty
        assert selection.fallback is None

    def test_ties_prefer_larger_context_then_id(self, make_model):
        entries = [
            make_model("z/small", 1.0, 1.0, 8_000),
            make_model("b/large", 1.0, 1.0, 128_000),
            make_model("a/large", 1.0, 1.0, 128_000),
        ]
        ranked = [e.id for e in rank_candidates(entries)]
        assert ranked == ["a/large", "b/large", "z/small"]

    def test_unreliable_cheap_models_are_skipped(self, make_model):
        entries = [
            make_model("free/tiny", 0.0),
            make_model("google/gemini-flash", 0.0005),
            make_model("vendor/solid", 0.2),
        ]
        selection = select_models(entries)
        assert selection.primary == "google/gemini-flash"
        assert selection.fallback == "vendor/solid"

    def test_only_unreliable_models_still_selected(self, make_model):
        selection = select_models([make_model("free/one", 0.0), make_model("free/two", 0.0, 0.0, 9_000)])
        assert selection.primary == "free/two"
        assert selection.fallback == "free/one"

    def test_custom_policy(self, make_model):
        policy = ReliabilityPolicy(min_input_price=0.0, trusted_families=())
        entries = [make_model("free/x", 0.0), make_model("paid/y", 0.1)]
        assert select_models(entries, policy=policy).primary == "paid/y"


class TestFormatSavings:
    def test_percentage(self, make_model):
        assert format_savings(make_model("a", 0.8), make_model("b", 0.7)) == "12.5%"

    def test_missing_or_free_current_model(self, make_model):
        assert format_savings(None, make_model("b", 0.7)) == "0%"
        assert format_savings(make_model("a", 0.0), make_model("b", 0.7)) == "0%"


class TestTaskModelConfig:
    def test_unknown_capability_is_rejected(self):
        with pytest.raises(ValueError, match="teleport"):
            TaskModelConfig.from_dict("x", {"required_capabilities": ["teleport"]})

    def test_local_without_endpoint_is_rule_based(self):
        assert TaskModelConfig(task_type="v", provider="local").is_rule_based
        assert not TaskModelConfig(
            task_type="v", provider="ollama", custom_endpoint="http://localhost:11434"
        ).is_rule_based


class TestModelRouterOptimize:
    NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_applies_cheaper_primary(self, catalog):
        config = TaskModelConfig(
            task_type="vision",
            primary_model="vendor/c-vision",
            required_capabilities=["vision"],
            max_price_per_million_input=1.0,
        )
        recs, touched = ModelRouter().optimize([config], catalog, now=self.NOW)

        assert recs[0].recommended_primary == "vendor/b-vision"
        assert recs[0].price_savings == "11.1%"
        assert recs[0].updated is True
        assert touched[0].primary_model == "vendor/b-vision"
        assert touched[0].fallback_model == "vendor/c-vision"
        assert touched[0].last_updated_at == self.NOW
        # Input config is left untouched
        assert config.primary_model == "vendor/c-vision"

    def test_check_only_advances_last_checked(self, catalog):
        config = TaskModelConfig(task_type="execution", primary_model="vendor/c-vision")
        recs, touched = ModelRouter().optimize([config], catalog, apply=False, now=self.NOW)

        assert recs[0].updated is False
        assert touched[0].primary_model == "vendor/c-vision"
        assert touched[0].last_checked_at == self.NOW
        assert touched[0].last_updated_at is None

    def test_second_run_is_idempotent(self, catalog):
        config = TaskModelConfig(task_type="execution", primary_model="vendor/c-vision")
        router = ModelRouter()
        _, first = router.optimize([config], catalog, now=self.NOW)
        recs, second = router.optimize(first, catalog, now=self.NOW)

        assert recs[0].updated is False
        assert recs[0].price_savings == "0.0%"
        assert second[0].primary_model == first[0].primary_model

    def test_skips_configs_without_auto_update(self, catalog):
        config = TaskModelConfig(task_type="verification", provider="local", auto_update=False)
        recs, touched = ModelRouter().optimize([config], catalog)
        assert recs == [] and touched == []

    def test_empty_selection_does_not_overwrite(self):
        config = TaskModelConfig(
            task_type="vision", primary_model="keep/me", required_capabilities=["vision"]
        )
        recs, touched = ModelRouter().optimize([config], ModelCatalog())
        assert recs[0].recommended_primary is None
        assert touched[0].primary_model == "keep/me"
