from __future__ import annotations

from gift_engine.services import cache as cache_module
from gift_engine.services.cache import CachingService, TTLCache


def test_ttl_cache_expires_entries(monkeypatch):
    now = [100.0]
    monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
    cache = TTLCache()

    cache.set("k", "v", ttl_seconds=10)
    assert cache.get("k") == "v"

    now[0] = 111.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_ttl_cache_evicts_least_recently_used():
    cache = TTLCache(max_entries=2)
    cache.set("a", 1, ttl_seconds=60)
    cache.set("b", 2, ttl_seconds=60)
    cache.get("a")
    cache.set("c", 3, ttl_seconds=60)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3


def test_zero_ttl_is_not_stored():
    cache = TTLCache()
    cache.set("k", "v", ttl_seconds=0)
    assert cache.get("k") is None


def test_product_results_keyed_by_body():
    service = CachingService()
    service.set_product_results({"query": "Kettle", "max_results": 3}, ["hit"])

    assert service.get_product_results({"max_results": 3, "query": "Kettle"}) == ["hit"]
    assert service.get_product_results({"query": "Kettle", "max_results": 4}) is None
