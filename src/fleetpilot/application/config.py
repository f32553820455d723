"""
Application Layer - Configuration

Two sources feed the engine:

- ``EngineSettings``: process settings from the environment (prefix
  ``FLEETPILOT_``) and an optional ``.env`` file
- ``EngineConfig``: the YAML engine file with task classes, reliability
  policy, platform start URLs and decision loop thresholds
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

from fleetpilot.core.domain.errors import ConfigurationError
from fleetpilot.core.domain.routing import ReliabilityPolicy, TaskModelConfig

logger = structlog.get_logger().bind(component="engine_config")

DEFAULT_PLATFORM_URLS = {
    "youtube": "https://www.youtube.com",
    "spotify": "https://open.spotify.com",
    "twitter": "https://twitter.com",
    "telegram": "https://web.telegram.org",
    "generic": "https://www.google.com",
}

DEFAULT_START_URL = "https://www.google.com"


class EngineSettings(BaseSettings):
    """Process level settings with environment variable support."""

    config_path: str = Field(default="configs/engine.yaml", description="Engine YAML file")
    storage_backend: str = Field(default="memory", description="memory or sqlite")
    sqlite_db_path: str = Field(default="data/fleetpilot.db", description="SQLite database path")
    completion_timeout: float = Field(default=30.0, description="Per-call completion timeout (s)")
    openrouter_api_key_env: str = Field(
        default="OPENROUTER_API_KEY", description="Env var holding the OpenRouter key"
    )
    host: str = Field(default="0.0.0.0", description="API bind host")
    port: int = Field(default=8000, description="API bind port")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = {
        "env_file": ".env",
        "env_prefix": "FLEETPILOT_",
        "case_sensitive": False,
        "extra": "ignore",
    }


@dataclass
class EngineConfig:
    """
    Parsed engine YAML.

    Attributes:
        task_configs: Task class routing and invocation settings
        reliability: Policy deciding which cheap models may be primary
        platform_urls: Start URL per target platform
        default_start_url: Start URL when nothing else applies
        providers: Provider overrides (api_key_env, model_prefix)
        max_model_failures: Consecutive unavailable decisions before failing
        recent_action_window: Prior actions shown to the execution model
        report_history_window: Decision logs replayed by report
        paused_wait_ms: Wait returned to runners of paused sessions
        log_token_usage: Log token counts of successful completions
    """

    task_configs: list[TaskModelConfig] = field(default_factory=list)
    reliability: ReliabilityPolicy = field(default_factory=ReliabilityPolicy)
    platform_urls: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PLATFORM_URLS))
    default_start_url: str = DEFAULT_START_URL
    providers: dict[str, dict[str, Any]] = field(default_factory=dict)
    max_model_failures: int = 3
    recent_action_window: int = 3
    report_history_window: int = 5
    paused_wait_ms: int = 2000
    log_token_usage: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """
        Raises:
            ConfigurationError: If a task class is malformed
        """
        task_configs = []
        for task_type, raw in (data.get("task_classes") or {}).items():
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Task class '{task_type}' must be a mapping")
            try:
                task_configs.append(TaskModelConfig.from_dict(task_type, raw))
            except (TypeError, ValueError) as e:
                raise ConfigurationError(str(e)) from e

        decision = data.get("decision") or {}
        start = data.get("start") or {}
        return cls(
            task_configs=task_configs,
            reliability=ReliabilityPolicy.from_dict(data.get("reliability")),
            platform_urls={**DEFAULT_PLATFORM_URLS, **(start.get("platform_urls") or {})},
            default_start_url=start.get("default_url", DEFAULT_START_URL),
            providers=data.get("providers") or {},
            max_model_failures=int(decision.get("max_model_failures", 3)),
            recent_action_window=int(decision.get("recent_action_window", 3)),
            report_history_window=int(decision.get("report_history_window", 5)),
            paused_wait_ms=int(decision.get("paused_wait_ms", 2000)),
            log_token_usage=bool(data.get("log_token_usage", True)),
        )


def load_engine_config(path: str | Path) -> EngineConfig:
    """
    Load the engine YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the content is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.error("engine_config_not_found", path=str(config_path))
        raise FileNotFoundError(f"Engine config not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Engine config must be a mapping: {config_path}")

    config = EngineConfig.from_dict(data)
    logger.debug(
        "engine_config_loaded",
        path=str(config_path),
        task_classes=[c.task_type for c in config.task_configs],
    )
    return config
