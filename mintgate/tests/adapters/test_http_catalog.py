"""Tests for the HTTP model catalog adapter using a stubbed transport."""

import httpx
import pytest

from mintgate.adapters.catalog.http import HTTPModelCatalogAdapter
from mintgate.core.model_number import ModelNumberResolver


def catalog_handler(request: httpx.Request) -> httpx.Response:
    routes = {
        "/api/v1/model-variations/m-1": httpx.Response(
            200, json={"id": "m-1", "modelNumber": " MN-001 "}
        ),
        "/api/v1/model-variations/m-empty": httpx.Response(
            200, json={"id": "m-empty", "modelNumber": ""}
        ),
        "/api/v1/model-variations/m-broken": httpx.Response(503, text="unavailable"),
    }
    return routes.get(request.url.path, httpx.Response(404, json={"error": "not found"}))


@pytest.fixture
async def adapter():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return catalog_handler(request)

    async with HTTPModelCatalogAdapter(
        "http://catalog.test/",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    ) as adapter:
        adapter.requests = requests  # type: ignore[attr-defined]
        yield adapter


@pytest.mark.asyncio
async def test_returns_trimmed_model_number(adapter: HTTPModelCatalogAdapter) -> None:
    assert await adapter.get_model_number("m-1") == "MN-001"

    request = adapter.requests[0]  # type: ignore[attr-defined]
    assert request.headers["Authorization"] == "Bearer secret"
    assert str(request.url) == "http://catalog.test/api/v1/model-variations/m-1"


@pytest.mark.asyncio
async def test_unknown_model_is_none(adapter: HTTPModelCatalogAdapter) -> None:
    assert await adapter.get_model_number("m-404") is None
    assert await adapter.get_model_number("m-empty") is None


@pytest.mark.asyncio
async def test_blank_model_id_skips_request(adapter: HTTPModelCatalogAdapter) -> None:
    assert await adapter.get_model_number("  ") is None
    assert adapter.requests == []  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_server_error_raises(adapter: HTTPModelCatalogAdapter) -> None:
    with pytest.raises(httpx.HTTPStatusError):
        await adapter.get_model_number("m-broken")


@pytest.mark.asyncio
async def test_resolver_tolerates_server_error(adapter: HTTPModelCatalogAdapter) -> None:
    resolver = ModelNumberResolver(adapter)
    assert await resolver.resolve("m-broken") is None
    assert await resolver.resolve("m-1") == "MN-001"
