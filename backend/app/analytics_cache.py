import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

CACHE_LIMITS = {
    "character": 500,
    "analytics": 1000,
    "realtime": 100,
}


def build_cache_key(cache_type: str, identifier: str, params: dict[str, Any] | None = None) -> str:
    params_part = json.dumps(params, sort_keys=True, default=str) if params else ""
    return f"{cache_type}:{identifier}:{params_part}"


class BoundedCache:
    """
    In-memory map capped at ``max_size`` entries.

    When a new key arrives on a full cache the oldest-inserted key is evicted.
    Reads never refresh an entry's position, so this is insertion-order
    eviction rather than LRU. Overwriting an existing key keeps its slot.
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        if key not in self._data and len(self._data) >= self.max_size:
            oldest_key = next(iter(self._data))
            del self._data[oldest_key]
        self._data[key] = value

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class AnalyticsCache:
    """Process-local caches for consistency and analytics results."""

    def __init__(self, limits: dict[str, int] | None = None):
        self._caches = {
            cache_type: BoundedCache(max_size)
            for cache_type, max_size in (limits or CACHE_LIMITS).items()
        }

    def _cache(self, cache_type: str) -> BoundedCache:
        try:
            return self._caches[cache_type]
        except KeyError:
            raise ValueError(f"Unknown cache type: {cache_type}") from None

    def get(self, cache_type: str, identifier: str, params: dict[str, Any] | None = None) -> Any | None:
        return self._cache(cache_type).get(build_cache_key(cache_type, identifier, params))

    def set(
        self,
        cache_type: str,
        identifier: str,
        value: Any,
        params: dict[str, Any] | None = None,
    ) -> None:
        self._cache(cache_type).set(build_cache_key(cache_type, identifier, params), value)

    def delete(self, cache_type: str, identifier: str, params: dict[str, Any] | None = None) -> bool:
        return self._cache(cache_type).delete(build_cache_key(cache_type, identifier, params))

    def clear(self, cache_type: str | None = None) -> None:
        if cache_type is None:
            for cache in self._caches.values():
                cache.clear()
            return
        self._cache(cache_type).clear()

    def invalidate_character(self, character_id: str) -> int:
        """Drop every entry keyed on this character, across all caches."""
        removed = 0
        for cache_type, cache in self._caches.items():
            prefix = f"{cache_type}:{character_id}:"
            for key in cache.keys():
                if key.startswith(prefix):
                    cache.delete(key)
                    removed += 1
        if removed:
            logger.debug("Invalidated %s cache entries for character %s", removed, character_id)
        return removed

    def stats(self) -> dict[str, dict[str, int]]:
        return {
            cache_type: {"size": len(cache), "max_size": cache.max_size}
            for cache_type, cache in self._caches.items()
        }


analytics_cache = AnalyticsCache()
