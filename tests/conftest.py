"""
Pytest configuration for Venuemap tests.

Components are wired with in-memory fakes: a scripted place provider, the
memory cache backend, the memory venue store and a fixed clock.
"""
import os
from datetime import datetime
from typing import Dict, List, Optional

import pytest

os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from venuemap.models.errors import NotFoundError
from venuemap.models.places import Period, ProviderPlace
from venuemap.services.cache_store import CacheStore
from venuemap.services.classifier import VenueClassifier
from venuemap.services.discovery import DiscoveryService
from venuemap.services.opening_hours import OpeningHoursEngine
from venuemap.services.rate_gateway import RateGateway, RateLimitState
from venuemap.services.redis_client import MemoryCacheBackend
from venuemap.services.venue_store import MemoryVenueStore

# Turin, Piazza Castello
TURIN_LAT = 45.0712
TURIN_LON = 7.6856

# Friday 5 January 2024, noon
FRIDAY_NOON = datetime(2024, 1, 5, 12, 0)


def make_place(
    place_id: str,
    name: str,
    lat: float = TURIN_LAT,
    lon: float = TURIN_LON,
    types: Optional[List[str]] = None,
    rating: Optional[float] = None,
    rating_count: Optional[int] = None,
    periods: Optional[List[Period]] = None,
    **extra,
) -> ProviderPlace:
    return ProviderPlace(
        place_id=place_id,
        name=name,
        address=extra.pop("address", "Via Roma 1, Torino"),
        latitude=lat,
        longitude=lon,
        types=types if types is not None else ["cafe"],
        rating=rating,
        rating_count=rating_count,
        periods=periods or [],
        **extra,
    )


def offset_north(meters: float) -> float:
    """Latitude roughly `meters` north of the test origin."""
    return TURIN_LAT + meters / 111_195


class ScriptedProvider:
    """Place provider double that returns canned records and records every call."""

    def __init__(self) -> None:
        self.nearby_results: List[ProviderPlace] = []
        self.text_results: Dict[str, List[ProviderPlace]] = {}
        self.default_text_results: List[ProviderPlace] = []
        self.details_results: Dict[str, ProviderPlace] = {}
        self.error: Optional[Exception] = None
        self.text_errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    async def nearby_search(self, latitude, longitude, radius, category_hint=None):
        self.calls.append(("nearby", latitude, longitude, radius, category_hint))
        if self.error:
            raise self.error
        return list(self.nearby_results)

    async def text_search(self, query, latitude=None, longitude=None, radius=None):
        self.calls.append(("text", query, latitude, longitude, radius))
        if query in self.text_errors:
            raise self.text_errors[query]
        if self.error:
            raise self.error
        return list(self.text_results.get(query, self.default_text_results))

    async def details(self, place_id):
        self.calls.append(("details", place_id))
        if self.error:
            raise self.error
        if place_id not in self.details_results:
            raise NotFoundError(f"Place not found: {place_id}")
        return self.details_results[place_id]

    def calls_of(self, kind: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == kind]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Replacement for asyncio.sleep that advances a fake clock instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def cache_backend() -> MemoryCacheBackend:
    return MemoryCacheBackend()


@pytest.fixture
def cache_store(cache_backend) -> CacheStore:
    return CacheStore(cache_backend)


@pytest.fixture
def venue_store() -> MemoryVenueStore:
    return MemoryVenueStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def gateway(sleep) -> RateGateway:
    return RateGateway(RateLimitState(100), cooldown_seconds=5.0, sleep=sleep)


@pytest.fixture
def discovery(provider, gateway, cache_store, venue_store) -> DiscoveryService:
    return DiscoveryService(
        provider=provider,
        gateway=gateway,
        cache=cache_store,
        classifier=VenueClassifier(),
        store=venue_store,
        status_engine=OpeningHoursEngine(),
        clock=lambda: FRIDAY_NOON,
    )
