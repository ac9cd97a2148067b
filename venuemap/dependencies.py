"""Dependencies for FastAPI routes."""
import logging
from datetime import datetime
from functools import lru_cache
from typing import NoReturn
from zoneinfo import ZoneInfo

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncEngine

from venuemap.config import settings
from venuemap.database import build_engine, build_session_factory
from venuemap.models.errors import DiscoveryError, RateLimitedError
from venuemap.services.cache_store import CacheStore, ttls_from_settings
from venuemap.services.city_index import CityIndex
from venuemap.services.classifier import VenueClassifier
from venuemap.services.discovery import DiscoveryLimits, DiscoveryService
from venuemap.services.google_places import GooglePlacesClient
from venuemap.services.opening_hours import OpeningHoursEngine
from venuemap.services.rate_gateway import RateGateway, RateLimitState
from venuemap.services.redis_client import MemoryCacheBackend, NullCacheBackend, RedisCacheBackend
from venuemap.services.search import SearchOrchestrator
from venuemap.services.venue_store import MemoryVenueStore, SqlVenueStore, VenueStore

logger = logging.getLogger(__name__)


def venue_now() -> datetime:
    """Current wall-clock time where the venues are."""
    return datetime.now(ZoneInfo(settings.venue_timezone))


@lru_cache
def get_cache_backend():
    if not settings.cache_enabled:
        logger.info("Caching disabled, using no-op cache backend")
        return NullCacheBackend()
    if settings.cache_backend == "memory":
        logger.info("Using in-process memory cache backend")
        return MemoryCacheBackend()
    return RedisCacheBackend.from_settings(settings)


@lru_cache
def get_cache_store() -> CacheStore:
    return CacheStore(get_cache_backend(), ttls_from_settings(settings))


@lru_cache
def get_places_client() -> GooglePlacesClient:
    return GooglePlacesClient(
        api_key=settings.google_places_api_key,
        language=settings.places_language,
        region=settings.places_region,
        timeout=settings.provider_timeout,
    )


@lru_cache
def get_rate_gateway() -> RateGateway:
    return RateGateway(
        RateLimitState(settings.rate_limit_per_minute),
        cooldown_seconds=settings.rate_limit_cooldown_seconds,
        timeout=settings.provider_timeout,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    return build_engine(settings.database_url)


@lru_cache
def get_venue_store() -> VenueStore:
    if settings.venue_store_backend == "memory":
        logger.info("Using in-process memory venue store")
        return MemoryVenueStore()
    return SqlVenueStore(build_session_factory(get_engine()))


@lru_cache
def get_city_index() -> CityIndex:
    return CityIndex.from_gazetteer(settings.gazetteer_path)


@lru_cache
def get_discovery_service() -> DiscoveryService:
    return DiscoveryService(
        provider=get_places_client(),
        gateway=get_rate_gateway(),
        cache=get_cache_store(),
        classifier=VenueClassifier(),
        store=get_venue_store(),
        status_engine=OpeningHoursEngine(),
        limits=DiscoveryLimits.from_settings(settings),
        clock=venue_now,
    )


@lru_cache
def get_search_orchestrator() -> SearchOrchestrator:
    return SearchOrchestrator(
        city_index=get_city_index(),
        discovery=get_discovery_service(),
        cache=get_cache_store(),
        max_limit=settings.max_limit,
    )


async def close_services() -> None:
    """Release network clients that were actually created."""
    if get_places_client.cache_info().currsize:
        await get_places_client().close()
    if get_cache_backend.cache_info().currsize:
        backend = get_cache_backend()
        if isinstance(backend, RedisCacheBackend):
            await backend.close()
    if get_engine.cache_info().currsize:
        await get_engine().dispose()


def raise_http_error(exc: DiscoveryError) -> NoReturn:
    """Translate a discovery error into the matching HTTP response."""
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers = {"Retry-After": str(int(exc.retry_after))}
    raise HTTPException(status_code=exc.http_status, detail=exc.model_dump(), headers=headers) from exc
