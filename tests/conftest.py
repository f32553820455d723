import pytest

from fleetpilot.core.domain.catalog import ModelCacheEntry, ModelCatalog
from fleetpilot.core.domain.models import Session, SessionStatus
from fleetpilot.core.domain.routing import TaskModelConfig
from fleetpilot.core.domain.session_tracker import SessionTracker
from fleetpilot.infrastructure.persistence.memory_store import InMemoryEngineStore


def make_entry(
    model_id: str,
    pricing_input: float,
    pricing_output: float = 0.0,
    context_length: int = 8000,
    capabilities: tuple[str, ...] = (),
) -> ModelCacheEntry:
    return ModelCacheEntry(
        id=model_id,
        pricing_input=pricing_input,
        pricing_output=pricing_output,
        context_length=context_length,
        capabilities=frozenset(capabilities),
        is_free=pricing_input == 0,
    )


@pytest.fixture
def catalog() -> ModelCatalog:
    """Small catalog: one text-only model and two vision models."""
    return ModelCatalog(
        entries=(
            make_entry("vendor/a-text", 0.5, 0.0, 32_000, ("streaming",)),
            make_entry("vendor/b-vision", 0.8, 0.0, 100_000, ("vision", "streaming")),
            make_entry("vendor/c-vision", 0.9, 0.0, 200_000, ("vision", "streaming")),
        ),
        version=1,
    )


@pytest.fixture
def task_configs() -> list[TaskModelConfig]:
    return [
        TaskModelConfig(
            task_type="execution",
            primary_model="vendor/a-text",
            fallback_model="vendor/b-vision",
            cost_per_1k_tokens=0.002,
        ),
        TaskModelConfig(
            task_type="vision",
            primary_model="vendor/b-vision",
            fallback_model="vendor/c-vision",
            required_capabilities=["vision"],
            max_price_per_million_input=1.0,
        ),
        TaskModelConfig(task_type="verification", provider="local", auto_update=False),
    ]


@pytest.fixture
def store(task_configs, catalog) -> InMemoryEngineStore:
    return InMemoryEngineStore(task_configs=task_configs, catalog=catalog)


@pytest.fixture
def tracker(store) -> SessionTracker:
    return SessionTracker(store)


@pytest.fixture
def make_session(store):
    """Factory saving a session with the given status into the store."""

    async def _make(status: SessionStatus = SessionStatus.RUNNING, **fields) -> Session:
        session = Session(goal=fields.pop("goal", "Open example.com"), status=status, **fields)
        await store.save_session(session)
        return session

    return _make


@pytest.fixture
def make_model():
    return make_entry
