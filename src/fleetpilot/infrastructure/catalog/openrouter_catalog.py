"""
OpenRouter Catalog Source

Polls the OpenRouter ``/models`` endpoint and converts the listing into a new
catalog snapshot with per-million prices and detected capabilities.
"""

import os

import httpx
import structlog

from fleetpilot.core.domain.catalog import ModelCatalog, entry_from_openrouter

OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"


class CatalogFetchError(RuntimeError):
    """Raised when the pricing catalog cannot be retrieved."""


class OpenRouterCatalogSource:
    """
    Fetches the priced model inventory from OpenRouter.

    Args:
        api_key_env: Environment variable holding the OpenRouter key
        url: Models endpoint
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        api_key_env: str = "OPENROUTER_API_KEY",
        url: str = OPENROUTER_MODELS_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key_env = api_key_env
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self.logger = structlog.get_logger().bind(component="openrouter_catalog")

    async def fetch(self, previous: ModelCatalog | None = None) -> ModelCatalog:
        """
        Fetch the listing and return the next catalog snapshot.

        Raises:
            CatalogFetchError: If the key is missing, the API call fails or the
                body is not a model listing
        """
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise CatalogFetchError(f"Missing API key: set {self.api_key_env}")

        self.logger.info("catalog_fetch_started", url=self.url)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(
                    self.url, headers={"Authorization": f"Bearer {api_key}"}
                )
            except httpx.HTTPError as e:
                raise CatalogFetchError(f"OpenRouter request failed: {e}") from e

        if response.status_code != 200:
            raise CatalogFetchError(f"OpenRouter API error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise CatalogFetchError("OpenRouter returned a non-JSON body") from e
        if not isinstance(payload, dict):
            raise CatalogFetchError("OpenRouter returned an unexpected payload")

        models = payload.get("data") or []
        if not isinstance(models, list):
            raise CatalogFetchError("OpenRouter listing has no model list")

        entries = []
        for model in models:
            if not isinstance(model, dict) or not model.get("id"):
                continue
            try:
                entries.append(entry_from_openrouter(model))
            except ValueError as e:
                self.logger.warning("catalog_entry_skipped", model_id=model.get("id"), error=str(e))

        catalog = (previous or ModelCatalog()).with_entries(entries)
        self.logger.info(
            "catalog_fetched", models=len(entries), catalog_version=catalog.version
        )
        return catalog
