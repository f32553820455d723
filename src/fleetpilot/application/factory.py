"""
Application Layer - Engine Factory

Dependency injection for the engine. Reads the settings and the YAML engine
file, picks the storage backend and wires the router, completion client,
decision loop and optimizer together.

Task classes from the YAML file seed the store; classes already present in a
durable store keep their stored primary/fallback models so optimizer updates
survive restarts.
"""

from dataclasses import dataclass

import structlog

from fleetpilot.application.config import EngineConfig, EngineSettings, load_engine_config
from fleetpilot.application.engine import AutomationEngine
from fleetpilot.application.optimizer import ModelOptimizer
from fleetpilot.core.domain.errors import ConfigurationError
from fleetpilot.core.domain.routing import ModelRouter
from fleetpilot.core.interfaces.storage import EngineStoreProtocol
from fleetpilot.infrastructure.catalog.openrouter_catalog import OpenRouterCatalogSource
from fleetpilot.infrastructure.llm.completion_client import CompletionClient
from fleetpilot.infrastructure.persistence.memory_store import InMemoryEngineStore
from fleetpilot.infrastructure.persistence.sqlite_store import SqliteEngineStore


@dataclass
class EngineComponents:
    engine: AutomationEngine
    optimizer: ModelOptimizer
    store: EngineStoreProtocol
    config: EngineConfig


class EngineFactory:
    """
    Builds fully wired engine components.

    Example:
        >>> factory = EngineFactory(EngineSettings(storage_backend="sqlite"))
        >>> components = await factory.create()
        >>> result = await components.engine.start(session_id, task)
    """

    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()
        self.logger = structlog.get_logger().bind(component="engine_factory")

    def load_config(self) -> EngineConfig:
        return load_engine_config(self.settings.config_path)

    async def create(self, config: EngineConfig | None = None) -> EngineComponents:
        """
        Raises:
            FileNotFoundError: If the engine YAML file is missing
            ConfigurationError: If the configuration is invalid
        """
        config = config or self.load_config()
        store = self._create_store()
        await self._seed_task_configs(store, config)

        router = ModelRouter(config.reliability)
        client = CompletionClient(
            store=store,
            router=router,
            providers=config.providers,
            timeout=self.settings.completion_timeout,
            log_token_usage=config.log_token_usage,
        )
        engine = AutomationEngine(store=store, completion_provider=client, config=config)
        optimizer = ModelOptimizer(
            store=store,
            router=router,
            catalog_source=OpenRouterCatalogSource(
                api_key_env=self.settings.openrouter_api_key_env,
                timeout=self.settings.completion_timeout,
            ),
        )

        self.logger.info(
            "engine_created",
            storage_backend=self.settings.storage_backend,
            task_classes=[c.task_type for c in config.task_configs],
        )
        return EngineComponents(engine=engine, optimizer=optimizer, store=store, config=config)

    def _create_store(self) -> EngineStoreProtocol:
        backend = self.settings.storage_backend.lower()
        if backend == "memory":
            return InMemoryEngineStore()
        if backend == "sqlite":
            return SqliteEngineStore(self.settings.sqlite_db_path)
        raise ConfigurationError(f"Unknown storage backend: {self.settings.storage_backend}")

    async def _seed_task_configs(self, store: EngineStoreProtocol, config: EngineConfig) -> None:
        for task_config in config.task_configs:
            if await store.get_task_config(task_config.task_type) is None:
                await store.save_task_config(task_config)
                self.logger.debug("task_class_seeded", task_type=task_config.task_type)
