"""Ruta Segura Backend — In-memory TTL caches for upstream lookups"""

import logging
import threading
from typing import Any, Optional

from cachetools import TTLCache

from config import GEOCODE_CACHE_TTL, ROUTE_CACHE_TTL

logger = logging.getLogger("rutasegura.cache")


class SharedCache:
    """Thread-safe wrapper around a cachetools TTLCache."""

    def __init__(self, name: str, ttl: int, max_size: int = 500):
        self.name = name
        self._store = TTLCache(maxsize=max_size, ttl=ttl)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._store.get(key)
        if value is not None:
            logger.debug(f"{self.name} cache hit for {key}")
        return value

    def set(self, key: str, value: Any):
        with self._lock:
            self._store[key] = value

    def clear(self):
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


def route_cache_key(start: tuple[float, float], end: tuple[float, float]) -> str:
    # ~100 m precision is plenty for city-to-city routes
    return f"{start[0]:.3f},{start[1]:.3f};{end[0]:.3f},{end[1]:.3f}"


geocode_cache = SharedCache("geocode", ttl=GEOCODE_CACHE_TTL)  # 30 days
route_cache = SharedCache("route", ttl=ROUTE_CACHE_TTL, max_size=200)  # 1 hour
