"""HTTP model catalog adapter.

Implements ModelVariationLookupPort against a product catalog REST API
that serves model variations as JSON:

    GET /api/v1/model-variations/{model_id}
    -> {"id": "...", "modelNumber": "..."}
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from mintgate.core.ports import ModelVariationLookupPort

logger = logging.getLogger(__name__)


class HTTPModelCatalogAdapter(ModelVariationLookupPort):
    """Model number lookup via the catalog REST API."""

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the catalog adapter.

        Args:
            api_url: Base URL of the catalog API (e.g., http://localhost:8081)
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used to stub the API in tests
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=self._get_headers(),
            timeout=timeout,
            transport=transport,
        )

    def _get_headers(self) -> dict[str, str]:
        """Build request headers."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def __aenter__(self) -> "HTTPModelCatalogAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.client.aclose()

    async def close(self) -> None:
        """Close the httpx client and clean up resources."""
        await self.client.aclose()

    async def get_model_number(self, model_id: str) -> str | None:
        """Return the model number of a model variation.

        Returns:
            The model number, or None if the variation is unknown or has
            no model number.

        Raises:
            httpx.HTTPError: If the catalog is unreachable or answers with
                an error other than 404.
        """
        model_id = (model_id or "").strip()
        if not model_id:
            return None

        try:
            response = await self.client.get(
                f"/api/v1/model-variations/{quote(model_id, safe='')}"
            )
            if response.status_code == 404:
                logger.debug(f"Model variation {model_id} not found in catalog")
                return None
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch model variation {model_id}: {e}")
            raise

        model_number = data.get("modelNumber") if isinstance(data, dict) else None
        if not isinstance(model_number, str) or not model_number.strip():
            return None
        return model_number.strip()
