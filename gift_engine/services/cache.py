from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, Tuple


class TTLCache:
    """Bounded in-process cache; expired entries are dropped on read."""

    def __init__(self, max_entries: int = 512) -> None:
        self._store: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = Lock()
        self._max_entries = max_entries

    def get(self, key: str) -> Any | None:
        now = time.monotonic()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= now:
                del self._store[key]
                return None
            self._store.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._store[key] = (time.monotonic() + ttl_seconds, value)
            self._store.move_to_end(key)
            while len(self._store) > self._max_entries:
                self._store.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class CachingService:
    """Caches product-search results per request body (query plus price bounds)."""

    def __init__(self, cache: TTLCache | None = None) -> None:
        self._cache = cache or TTLCache()

    def get_product_results(self, body: Dict[str, Any]) -> Any | None:
        return self._cache.get(self._product_key(body))

    def set_product_results(self, body: Dict[str, Any], payload: Any, ttl_seconds: int = 600) -> None:
        self._cache.set(self._product_key(body), payload, ttl_seconds)

    def clear(self) -> None:
        self._cache.clear()

    @staticmethod
    def _product_key(body: Dict[str, Any]) -> str:
        normalized = json.dumps(body or {}, ensure_ascii=False, sort_keys=True)
        digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
        return f"products:{digest}"


_caching_service = CachingService()


def get_caching_service() -> CachingService:
    return _caching_service
