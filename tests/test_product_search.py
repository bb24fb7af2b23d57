from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from gift_engine.config import Settings
from gift_engine.services.cache import CachingService
from gift_engine.services.errors import ProductSearchError
from gift_engine.services.product_search import ProductSearchClient, to_minor_units, with_partner_tag


def _live_settings(**overrides) -> Settings:
    values = {
        "product_search_base_url": "https://search.example/api/",
        "product_search_token": "secret",
        "product_partner_tag": "gifts-20",
    }
    values.update(overrides)
    return Settings(**values)


def _client(handler, **overrides) -> ProductSearchClient:
    return ProductSearchClient(
        _live_settings(**overrides),
        cache=CachingService(),
        transport=httpx.MockTransport(handler),
    )


def test_mock_mode_without_credentials(settings):
    client = ProductSearchClient(settings, cache=CachingService())

    products = asyncio.run(client.search("Coffee grinder", max_results=2))

    assert not client.is_live
    assert len(products) == 2
    assert all(product.title.startswith("Coffee grinder") for product in products)


def test_blank_query_returns_nothing(settings):
    client = ProductSearchClient(settings, cache=CachingService())
    assert asyncio.run(client.search("   ")) == []


def test_live_search_sends_minor_units_and_parses_aliases():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "products": [
                    {
                        "asin": "B001",
                        "title": "Pour-over Kettle",
                        "imageUrl": "https://img.example/k.png",
                        "detailPageUrl": "https://shop.example/dp/B001?ref=x",
                        "priceDisplay": "$49.99",
                    },
                    {"title": "missing id"},
                ]
            },
        )

    client = _client(handler)
    products = asyncio.run(
        client.search("Kettle", budget_min=25.5, budget_max=60, max_results=3, trace_id="trace-1")
    )

    assert len(products) == 1
    product = products[0]
    assert product.product_id == "B001"
    assert product.image_url == "https://img.example/k.png"
    assert product.price_display == "$49.99"
    assert product.detail_url == "https://shop.example/dp/B001?ref=x&tag=gifts-20"

    request = seen[0]
    assert str(request.url) == "https://search.example/api/search"
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.headers["X-Request-Id"] == "trace-1"
    assert json.loads(request.content) == {
        "query": "Kettle",
        "max_results": 3,
        "min_price": 2550,
        "max_price": 6000,
    }


def test_live_search_results_are_cached():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"products": [{"id": "P1", "title": "Kettle"}]})

    client = _client(handler)
    asyncio.run(client.search("Kettle"))
    second = asyncio.run(client.search("Kettle"))

    assert len(calls) == 1
    assert second[0].product_id == "P1"


def test_live_search_http_error_raises():
    client = _client(lambda request: httpx.Response(503, json={"error": "down"}))

    with pytest.raises(ProductSearchError):
        asyncio.run(client.search("Kettle"))


def test_live_search_bad_json_raises():
    client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(ProductSearchError):
        asyncio.run(client.search("Kettle"))


def test_to_minor_units():
    assert to_minor_units(None) is None
    assert to_minor_units(19.99) == 1999
    assert to_minor_units(-5) == 0


def test_with_partner_tag_replaces_existing_tag():
    assert with_partner_tag("https://shop.example/p?tag=old&x=1", "new") == "https://shop.example/p?x=1&tag=new"
    assert with_partner_tag("not a url", "new") == "not a url"
    assert with_partner_tag("https://shop.example/p", None) == "https://shop.example/p"
