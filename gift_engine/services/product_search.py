from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import ProductCandidate
from ..utils.logging import get_request_logger
from .cache import CachingService, get_caching_service
from .errors import ProductSearchError

logger = logging.getLogger(__name__)

MOCK_PRODUCTS: List[Dict[str, Any]] = [
    {"asin": "MOCK-COFFEE-BOX", "price_display": "$42.00", "currency": "USD"},
    {"asin": "MOCK-CANDLE", "price_display": "$28.50", "currency": "USD"},
    {"asin": "MOCK-TEA-SET", "price_display": "$65.00", "currency": "USD"},
]
MOCK_IMAGE_URL = "/static/gift-placeholder.png"


def to_minor_units(amount: float | None) -> int | None:
    if amount is None:
        return None
    return max(round(amount * 100), 0)


def with_partner_tag(url: str | None, tag: str | None) -> str | None:
    """Append the affiliate ``tag`` query parameter to ``url`` when configured."""

    if not url or not tag:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != "tag"]
    query.append(("tag", tag))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class ProductSearchClient:
    """HTTP client for the product-search provider.

    Without a base URL and token the client serves deterministic mock
    products so local runs and tests never need network access.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        cache: CachingService | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = (settings.product_search_base_url or "").rstrip("/")
        self._token = settings.product_search_token
        self._cache = cache or get_caching_service()
        self._transport = transport

    @property
    def is_live(self) -> bool:
        return bool(self._base_url and self._token)

    async def search(
        self,
        query: str,
        *,
        budget_min: float | None = None,
        budget_max: float | None = None,
        max_results: int | None = None,
        trace_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[ProductCandidate]:
        query = (query or "").strip()
        if not query:
            return []
        limit = min(max(max_results or self._settings.product_search_max_results, 1), 10)

        if not self.is_live:
            return self._mock_products(query)[:limit]

        body: Dict[str, Any] = {"query": query, "max_results": limit}
        min_price = to_minor_units(budget_min)
        max_price = to_minor_units(budget_max)
        if min_price is not None:
            body["min_price"] = min_price
        if max_price is not None:
            body["max_price"] = max_price

        cached = self._cache.get_product_results(body)
        if cached is not None:
            return [ProductCandidate.model_validate(item) for item in cached]

        products = await self._post_search(body, trace_id=trace_id, user_id=user_id)
        self._cache.set_product_results(
            body,
            [product.model_dump() for product in products],
            ttl_seconds=self._settings.product_search_cache_ttl_seconds,
        )
        return products

    async def _post_search(
        self,
        body: Dict[str, Any],
        *,
        trace_id: Optional[str],
        user_id: Optional[str],
    ) -> List[ProductCandidate]:
        url = f"{self._base_url}/search"
        headers: Dict[str, str] = {"Authorization": self._auth_header()}
        if trace_id:
            headers["X-Request-Id"] = trace_id

        req_logger = get_request_logger(logger, trace_id=trace_id, user_id=user_id)
        timeout = httpx.Timeout(self._settings.http_timeout_seconds)
        start = time.perf_counter()
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=body, headers=headers)
                elapsed_ms = (time.perf_counter() - start) * 1000
                req_logger.info(
                    "product_search.search query=%s status=%s latency_ms=%.1f",
                    body.get("query"),
                    response.status_code,
                    elapsed_ms,
                )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                req_logger.error("product_search error url=%s error=%s", url, exc)
                raise ProductSearchError(str(exc), reason="product_search_failed") from exc

        return self._parse_products(payload)

    def _parse_products(self, payload: Any) -> List[ProductCandidate]:
        items = payload.get("products") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        products: List[ProductCandidate] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                product = ProductCandidate.model_validate(item)
            except ValidationError as exc:
                logger.debug("Skipping malformed product payload: %s", exc)
                continue
            product.detail_url = with_partner_tag(product.detail_url, self._settings.product_partner_tag)
            products.append(product)
        return products

    def _auth_header(self) -> str:
        normalized = (self._token or "").strip()
        if normalized.lower().startswith("bearer "):
            return normalized
        return f"Bearer {normalized}"

    @staticmethod
    def _mock_products(query: str) -> List[ProductCandidate]:
        return [
            ProductCandidate(
                product_id=f"{item['asin']}-{index}",
                title=f"{query} - {item['asin'].replace('MOCK-', '').replace('-', ' ').title()}",
                image_url=MOCK_IMAGE_URL,
                detail_url=None,
                price_display=item["price_display"],
                currency=item["currency"],
            )
            for index, item in enumerate(MOCK_PRODUCTS)
        ]
