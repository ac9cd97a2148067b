"""Cache store with per-category TTLs and a typed wrapper."""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from venuemap.config import Settings
from venuemap.services.redis_client import CacheBackend
from venuemap.utils.cache_keys import CacheCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTLS: Dict[CacheCategory, int] = {
    CacheCategory.NEARBY: 86400,        # 24 hours
    CacheCategory.DETAILS: 604800,      # 7 days
    CacheCategory.TEXT: 43200,          # 12 hours
    CacheCategory.CITY: 3600,           # 1 hour
    CacheCategory.CITY_PLACES: 7200,    # 2 hours
}


def ttls_from_settings(settings: Settings) -> Dict[CacheCategory, int]:
    return {
        CacheCategory.NEARBY: settings.cache_ttl_nearby,
        CacheCategory.DETAILS: settings.cache_ttl_details,
        CacheCategory.TEXT: settings.cache_ttl_text,
        CacheCategory.CITY: settings.cache_ttl_city,
        CacheCategory.CITY_PLACES: settings.cache_ttl_city_places,
    }


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    saves: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total * 100, 1) if total else 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "saves": self.saves,
            "errors": self.errors,
            "hit_rate": self.hit_rate,
        }


class CacheStore:
    """
    JSON cache on top of a key/value backend.

    A backend failure is logged and treated as a miss (reads) or a no-op
    (writes), so callers fall through to the provider instead of failing.
    """

    def __init__(self, backend: CacheBackend, ttls: Optional[Dict[CacheCategory, int]] = None) -> None:
        self.backend = backend
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.stats = CacheStats()

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache, or None on miss."""
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Cache GET error for {key}: {e}")
            return None

        if raw is None:
            self.stats.misses += 1
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            value = json.loads(raw)
        except ValueError as e:
            self.stats.misses += 1
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

        self.stats.hits += 1
        logger.debug(f"Cache hit: {key} (hit rate {self.stats.hit_rate}%)")
        return value

    async def set(
        self,
        key: str,
        value: Any,
        category: Optional[CacheCategory] = None,
        ttl: Optional[int] = None,
    ) -> bool:
        """Set value in cache; the TTL defaults to the category's."""
        if ttl is None:
            if category is None:
                raise ValueError("either category or ttl is required")
            ttl = self.ttls[category]

        try:
            serialized = json.dumps(value)
            await self.backend.set(key, serialized, ttl)
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Cache SET error for {key}: {e}")
            return False

        self.stats.saves += 1
        return True

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            await self.backend.delete(key)
            return True
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Cache DELETE error for {key}: {e}")
            return False

    async def ping(self) -> bool:
        """Check if the backend is reachable."""
        try:
            return await self.backend.ping()
        except Exception:
            return False


class TypedCache(Generic[T]):
    """A `CacheStore` view bound to one category and one stored shape."""

    def __init__(self, store: CacheStore, category: CacheCategory, shape: Any) -> None:
        self.store = store
        self.category = category
        self._adapter: TypeAdapter = TypeAdapter(shape)

    async def get(self, key: str) -> Optional[T]:
        data = await self.store.get(key)
        if data is None:
            return None
        try:
            return self._adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"Cached value for {key} does not match {self.category.value} shape: {e}")
            return None

    async def set(self, key: str, value: T) -> bool:
        return await self.store.set(
            key, self._adapter.dump_python(value, mode="json"), category=self.category
        )

    async def delete(self, key: str) -> bool:
        return await self.store.delete(key)
