"""
Completion Client for task-class routed LLM calls.

This module resolves the model for a task class (explicit override, the
configured primary, or the router's pick over the stored catalog), calls it
through LiteLLM with the class's token and temperature settings, retries once
on the configured fallback model and records cost/latency telemetry.

Task classes bound to a local provider without an endpoint are rule-based:
they return an empty completion and never touch the network.
"""

import asyncio
import os
import time
from typing import Any

import litellm
import structlog

from fleetpilot.core.domain.models import UsageRecord
from fleetpilot.core.domain.routing import ModelRouter, TaskModelConfig
from fleetpilot.core.interfaces.storage import EngineStoreProtocol

DEFAULT_PROVIDERS: dict[str, dict[str, Any]] = {
    "openrouter": {"api_key_env": "OPENROUTER_API_KEY", "model_prefix": "openrouter/"},
    "openai": {"api_key_env": "OPENAI_API_KEY", "model_prefix": ""},
    "ollama": {"api_key_env": None, "model_prefix": "ollama/"},
    "local": {"api_key_env": None, "model_prefix": "openai/"},
}

RULE_BASED_MODEL = "rule-based"


class CompletionClient:
    """
    Routes completions for named task classes.

    Example:
        >>> client = CompletionClient(store=store, router=ModelRouter())
        >>> result = await client.complete(
        ...     "execution",
        ...     [{"role": "user", "content": "Next action?"}],
        ...     session_id="abc",
        ... )
        >>> if result["success"]:
        ...     print(result["content"], result["usage"])
    """

    def __init__(
        self,
        store: EngineStoreProtocol,
        router: ModelRouter | None = None,
        providers: dict[str, dict[str, Any]] | None = None,
        timeout: float = 30.0,
        log_token_usage: bool = True,
    ):
        """
        Initialize the client.

        Args:
            store: Storage collaborator holding task configs, catalog and telemetry
            router: Router used when a task class has no primary model yet
            providers: Provider settings (api_key_env, model_prefix) keyed by name
            timeout: Per-call timeout in seconds
            log_token_usage: Log token counts of successful calls
        """
        self.store = store
        self.router = router or ModelRouter()
        self.providers = {**DEFAULT_PROVIDERS, **(providers or {})}
        self.timeout = timeout
        self.log_token_usage = log_token_usage
        self.logger = structlog.get_logger().bind(component="completion_client")

    async def complete(
        self,
        task_type: str,
        messages: list[dict[str, Any]],
        model: str | None = None,
        session_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Run a completion for ``task_type``.

        Args:
            task_type: Task class whose configuration applies
            messages: Chat messages (role/content)
            model: Explicit model override for this call
            session_id: Session the usage is attributed to

        Returns:
            Dict with:
            - success: bool
            - content: str (if successful, empty for rule-based classes)
            - usage: {"input_tokens", "output_tokens"} (if successful)
            - model / provider / latency_ms
            - error / error_type (if failed)
        """
        config = await self.store.get_task_config(task_type)
        if config is None or not config.is_active:
            self.logger.error("no_model_config", task_type=task_type)
            return self._failure(f"No active model config for task type: {task_type}", "NoModelConfig")

        if config.is_rule_based:
            self.logger.info("rule_based_completion", task_type=task_type, provider=config.provider)
            return {
                "success": True,
                "content": "",
                "usage": {"input_tokens": 0, "output_tokens": 0},
                "model": RULE_BASED_MODEL,
                "provider": config.provider,
                "latency_ms": 0,
            }

        primary, fallback = await self._resolve_models(config, model)
        if primary is None:
            return self._failure(
                f"No eligible model for task type: {task_type}", "NoEligibleModel"
            )

        call_kwargs = self._provider_kwargs(config)
        if call_kwargs is None:
            return self._failure(
                f"Missing API credentials for provider: {config.provider}",
                "MissingCredentials",
                model=primary,
            )

        start_time = time.time()
        result = await self._call(config, primary, messages, call_kwargs)

        if not result["success"] and fallback and fallback != primary:
            self.logger.warning(
                "completion_fallback",
                task_type=task_type,
                failed_model=primary,
                fallback_model=fallback,
                error_type=result.get("error_type"),
            )
            result = await self._call(config, fallback, messages, call_kwargs)

        if not result["success"]:
            self.logger.error(
                "completion_failed",
                task_type=task_type,
                model=result.get("model"),
                error_type=result.get("error_type"),
                error=str(result.get("error"))[:200],
            )
            return result

        latency_ms = int((time.time() - start_time) * 1000)
        result["latency_ms"] = latency_ms
        await self._record_usage(config, result, session_id, latency_ms)
        return result

    async def _resolve_models(
        self, config: TaskModelConfig, override: str | None
    ) -> tuple[str | None, str | None]:
        if override:
            return override, config.fallback_model
        if config.primary_model:
            return config.primary_model, config.fallback_model

        catalog = await self.store.get_catalog()
        selection = self.router.select(config.task_type, catalog, config)
        self.logger.info(
            "model_routed",
            task_type=config.task_type,
            primary=selection.primary,
            fallback=selection.fallback,
            catalog_version=catalog.version,
        )
        return selection.primary, selection.fallback

    def _provider_kwargs(self, config: TaskModelConfig) -> dict[str, Any] | None:
        """Build LiteLLM connection arguments, or None when credentials are missing."""
        provider = self.providers.get(config.provider, {})
        kwargs: dict[str, Any] = {}

        if config.custom_endpoint:
            kwargs["api_base"] = config.custom_endpoint

        api_key_env = provider.get("api_key_env")
        if api_key_env:
            api_key = os.getenv(api_key_env)
            if not api_key:
                self.logger.warning(
                    "api_key_missing",
                    provider=config.provider,
                    env_var=api_key_env,
                    hint="Set environment variable for API access",
                )
                return None
            kwargs["api_key"] = api_key
        elif config.provider == "local":
            # OpenAI-compatible local servers ignore the key but LiteLLM requires one
            kwargs["api_key"] = "local"

        return kwargs

    def _litellm_model(self, config: TaskModelConfig, model: str) -> str:
        prefix = self.providers.get(config.provider, {}).get("model_prefix", "")
        if prefix and not model.startswith(prefix):
            return f"{prefix}{model}"
        return model

    async def _call(
        self,
        config: TaskModelConfig,
        model: str,
        messages: list[dict[str, Any]],
        call_kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        actual_model = self._litellm_model(config, model)
        self.logger.info(
            "completion_started",
            task_type=config.task_type,
            model=actual_model,
            message_count=len(messages),
        )
        try:
            response = await asyncio.wait_for(
                litellm.acompletion(
                    model=actual_model,
                    messages=messages,
                    max_tokens=config.max_tokens,
                    temperature=config.temperature,
                    timeout=self.timeout,
                    **call_kwargs,
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            return self._failure(str(e), type(e).__name__, model=model)

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        if message is None:
            return self._failure("Model returned no choices", "EmptyResponse", model=model)

        content = getattr(message, "content", None) or ""
        usage = getattr(response, "usage", None) or {}

        # Handle both dict and object forms
        if isinstance(usage, dict):
            input_tokens = usage.get("prompt_tokens", 0) or 0
            output_tokens = usage.get("completion_tokens", 0) or 0
        else:
            input_tokens = getattr(usage, "prompt_tokens", 0) or 0
            output_tokens = getattr(usage, "completion_tokens", 0) or 0

        if self.log_token_usage:
            self.logger.info(
                "completion_success",
                task_type=config.task_type,
                model=actual_model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        return {
            "success": True,
            "content": content,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
            "model": model,
            "provider": config.provider,
        }

    async def _record_usage(
        self,
        config: TaskModelConfig,
        result: dict[str, Any],
        session_id: str | None,
        latency_ms: int,
    ) -> None:
        usage = result["usage"]
        cost = (usage["input_tokens"] + usage["output_tokens"]) / 1000 * config.cost_per_1k_tokens
        await self.store.record_usage(
            UsageRecord(
                session_id=session_id,
                task_type=config.task_type,
                model=result["model"],
                provider=config.provider,
                input_tokens=usage["input_tokens"],
                output_tokens=usage["output_tokens"],
                cost_usd=cost,
                latency_ms=latency_ms,
            )
        )

    @staticmethod
    def _failure(error: str, error_type: str, model: str | None = None) -> dict[str, Any]:
        return {
            "success": False,
            "error": error,
            "error_type": error_type,
            "model": model,
        }
