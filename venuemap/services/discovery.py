"""
Discovery service: nearby, text, viewport and batch searches, popular venues and place details.

Every query goes cache -> provider (through the rate gateway) -> classifier
-> venue store -> cache, and results are decorated with distance and live
opening status on the way out.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple, Union

from venuemap.config import Settings
from venuemap.models.errors import (
    DiscoveryError,
    InvalidInputError,
    NotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
)
from venuemap.models.places import (
    BatchLocation,
    BatchLocationResult,
    BatchSearchResponse,
    BatchSummary,
    Bounds,
    ProviderPlace,
    SearchResult,
    Venue,
    VenueCategory,
)
from venuemap.services.cache_store import CacheStore, TypedCache
from venuemap.services.classifier import VenueClassifier
from venuemap.services.opening_hours import OpeningHoursEngine
from venuemap.services.rate_gateway import RateGateway
from venuemap.services.venue_store import VenueStore
from venuemap.utils.cache_keys import CacheCategory, details_key, nearby_key, text_search_key
from venuemap.utils.geo import format_distance, haversine_meters, is_valid_coordinates
from venuemap.utils.normalizers import normalize_query

logger = logging.getLogger(__name__)

PROVIDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MIN_QUERY_LENGTH = 2

# Proximity ranking bands
RATING_BAND_METERS = 300
NEAR_BAND_METERS = 500

DEFAULT_MIN_RATING = 4.0
MAX_BATCH_LOCATIONS = 10

# Viewport searches reach the box corners plus a margin, up to a hard cap
BOUNDS_RADIUS_MARGIN = 1.2
MAX_BOUNDS_RADIUS = 25000


class PlacesProvider(Protocol):
    async def nearby_search(
        self, latitude: float, longitude: float, radius: int, category_hint: Optional[str] = None
    ) -> List[ProviderPlace]: ...

    async def text_search(
        self,
        query: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius: Optional[int] = None,
    ) -> List[ProviderPlace]: ...

    async def details(self, place_id: str) -> ProviderPlace: ...


@dataclass(frozen=True)
class DiscoveryLimits:
    default_radius: int = 1500
    min_radius: int = 100
    max_radius: int = 50000
    max_limit: int = 50
    stale_after: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DiscoveryLimits":
        return cls(
            default_radius=settings.default_radius,
            min_radius=settings.min_radius,
            max_radius=settings.max_radius,
            max_limit=settings.max_limit,
            stale_after=timedelta(hours=settings.stale_after_hours),
        )


def proximity_rank_key(result: SearchResult) -> Tuple[int, float, float]:
    """
    Venues closer than 300m are ordered by rating, everything under 500m comes
    before everything farther away, and distance decides the rest.
    """
    distance = result.distance_meters if result.distance_meters is not None else float("inf")
    if distance < RATING_BAND_METERS:
        return 0, -(result.venue.rating or 0.0), distance
    if distance < NEAR_BAND_METERS:
        return 1, 0.0, distance
    return 2, 0.0, distance


class DiscoveryService:
    """Answers nearby, text and detail queries against the place-data provider."""

    def __init__(
        self,
        provider: PlacesProvider,
        gateway: RateGateway,
        cache: CacheStore,
        classifier: VenueClassifier,
        store: VenueStore,
        status_engine: OpeningHoursEngine,
        limits: Optional[DiscoveryLimits] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.provider = provider
        self.gateway = gateway
        self.classifier = classifier
        self.store = store
        self.status_engine = status_engine
        self.limits = limits or DiscoveryLimits()
        self.clock = clock

        self.nearby_cache: TypedCache[List[Venue]] = TypedCache(cache, CacheCategory.NEARBY, List[Venue])
        self.text_cache: TypedCache[List[Venue]] = TypedCache(cache, CacheCategory.TEXT, List[Venue])
        self.details_cache: TypedCache[Venue] = TypedCache(cache, CacheCategory.DETAILS, Venue)

    async def search_nearby(
        self,
        latitude: float,
        longitude: float,
        category: Union[VenueCategory, str],
        radius: Optional[int] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        """Venues of one category around a point, proximity-ranked, truncated to `limit`."""
        self._validate_coordinates(latitude, longitude)
        category = self._validate_category(category)
        radius = self._validate_radius(radius)
        self._validate_limit(limit)

        key = nearby_key(latitude, longitude, radius, category.value)
        venues = await self.nearby_cache.get(key)
        if venues is not None:
            logger.debug(f"Nearby cache hit for {key}: {len(venues)} venues")
        else:
            raw_places = await self.gateway.call(
                lambda: self.provider.nearby_search(latitude, longitude, radius, category.value)
            )
            accepted = self.classifier.to_venues(raw_places)
            await self._persist(accepted)

            venues = [venue for venue in accepted if venue.category == category]
            await self.nearby_cache.set(key, venues)
            logger.info(
                f"Nearby search ({latitude}, {longitude}) r={radius} {category.value}: "
                f"{len(raw_places)} provider results, {len(venues)} kept"
            )

        results = self._decorate(venues, (latitude, longitude))
        results.sort(key=proximity_rank_key)
        return results[:limit]

    async def search_by_text(
        self,
        query: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        """Free-text search, optionally biased towards a location."""
        normalized = normalize_query(query)
        if len(normalized) < MIN_QUERY_LENGTH:
            raise InvalidInputError(f"Search query must be at least {MIN_QUERY_LENGTH} characters")
        origin = self._optional_origin(latitude, longitude)
        self._validate_limit(limit)

        key = text_search_key(normalized, latitude, longitude)
        venues = await self.text_cache.get(key)
        if venues is not None:
            logger.debug(f"Text search cache hit for {key}: {len(venues)} venues")
        else:
            radius = self.limits.default_radius if origin else None
            raw_places = await self.gateway.call(
                lambda: self.provider.text_search(normalized, latitude, longitude, radius)
            )
            venues = self.classifier.to_venues(raw_places)
            await self._persist(venues)
            await self.text_cache.set(key, venues)
            logger.info(f"Text search {normalized!r}: {len(raw_places)} provider results, {len(venues)} kept")

        results = self._decorate(venues, origin)
        if origin:
            results.sort(key=proximity_rank_key)
        return results[:limit]

    async def get_details(
        self,
        provider_id: str,
        force_refresh: bool = False,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> SearchResult:
        """
        Details for one venue: cache, then the venue store, then the provider.

        When the provider fails, the last known record is returned instead.
        Only when no tier has data does the call fail.
        """
        self._validate_provider_id(provider_id)
        origin = self._optional_origin(latitude, longitude)
        key = details_key(provider_id)

        # A forced refresh still reads the cache so it can serve as fallback
        cached = await self.details_cache.get(key)
        if cached is not None and not force_refresh:
            return self._decorate([cached], origin)[0]

        stored = await self._load_stored(provider_id)
        if stored is not None and not force_refresh and not stored.is_stale(self.limits.stale_after):
            await self.details_cache.set(key, stored)
            return self._decorate([stored], origin)[0]

        fallback = stored or cached
        try:
            raw_place = await self.gateway.call(lambda: self.provider.details(provider_id))
        except (ProviderUnavailableError, RateLimitedError, NotFoundError) as exc:
            if fallback is None:
                raise
            logger.warning(f"Serving last known data for {provider_id}: {exc.message}")
            return self._decorate([fallback], origin)[0]

        venue = self.classifier.to_venue(raw_place)
        if venue is None:
            if fallback is not None:
                logger.warning(f"Fresh record for {provider_id} was rejected, serving last known data")
                return self._decorate([fallback], origin)[0]
            raise NotFoundError(f"No cafe or restaurant found for {provider_id}")

        await self._persist([venue])
        await self.details_cache.set(key, venue)
        logger.info(f"Place details refreshed for {provider_id}")
        return self._decorate([venue], origin)[0]

    async def popular_places(
        self,
        category: Union[VenueCategory, str],
        min_rating: float = DEFAULT_MIN_RATING,
        limit: int = 10,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> List[SearchResult]:
        """Best rated venues already known to the store. Never calls the provider."""
        category = self._validate_category(category)
        if not 0 <= min_rating <= 5:
            raise InvalidInputError("Minimum rating must be between 0 and 5")
        self._validate_limit(limit)
        origin = self._optional_origin(latitude, longitude)

        try:
            venues = await self.store.top_rated(category, min_rating, limit)
        except Exception as e:
            logger.error(f"Failed to load popular {category.value} venues: {e}")
            venues = []
        return self._decorate(venues, origin)

    async def search_within_bounds(
        self,
        bounds: Bounds,
        category: Union[VenueCategory, str],
        limit: int = 50,
    ) -> List[SearchResult]:
        """
        Venues inside a map viewport.

        Searches around the box center with a radius reaching the corners
        plus a margin, capped at 25 km, then drops anything outside the box.
        """
        if not (
            is_valid_coordinates(bounds.north, bounds.east)
            and is_valid_coordinates(bounds.south, bounds.west)
        ):
            raise InvalidInputError("Invalid geographic bounds")
        if bounds.north <= bounds.south:
            raise InvalidInputError("North latitude must be greater than south latitude")
        if bounds.east <= bounds.west:
            raise InvalidInputError("East longitude must be greater than west longitude")

        center_lat, center_lon = bounds.center
        corner = haversine_meters(center_lat, center_lon, bounds.north, bounds.east)
        radius = round(min(corner * BOUNDS_RADIUS_MARGIN, MAX_BOUNDS_RADIUS))
        radius = max(radius, self.limits.min_radius)

        results = await self.search_nearby(center_lat, center_lon, category, radius=radius, limit=limit)
        inside = [r for r in results if bounds.contains(r.venue.latitude, r.venue.longitude)]
        logger.info(
            f"Bounds search r={radius}: {len(results)} found, {len(inside)} inside the viewport"
        )
        return inside

    async def batch_search(self, locations: List[BatchLocation]) -> BatchSearchResponse:
        """
        Nearby searches for several points in one request.

        Every point is validated up front. A provider failure on one point is
        reported on that point and does not stop the others.
        """
        if not locations:
            raise InvalidInputError("At least one location is required")
        if len(locations) > MAX_BATCH_LOCATIONS:
            raise InvalidInputError(f"Maximum {MAX_BATCH_LOCATIONS} locations allowed per batch")
        for index, location in enumerate(locations, start=1):
            if not is_valid_coordinates(location.latitude, location.longitude):
                raise InvalidInputError(f"Location {index}: invalid coordinates")

        outcomes = []
        for location in locations:
            try:
                results = await self.search_nearby(
                    location.latitude,
                    location.longitude,
                    location.type,
                    radius=location.radius,
                    limit=location.limit,
                )
            except DiscoveryError as exc:
                logger.warning(
                    f"Batch search failed for ({location.latitude}, {location.longitude}): {exc.message}"
                )
                outcomes.append(BatchLocationResult(location=location, success=False, error=exc.message))
                continue
            outcomes.append(
                BatchLocationResult(location=location, success=True, results=results, count=len(results))
            )

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        summary = BatchSummary(
            total_locations=len(locations),
            successful_searches=succeeded,
            failed_searches=len(locations) - succeeded,
            total_places_found=sum(outcome.count for outcome in outcomes),
        )
        logger.info(
            f"Batch search: {summary.successful_searches}/{summary.total_locations} succeeded, "
            f"{summary.total_places_found} places"
        )
        return BatchSearchResponse(results=outcomes, summary=summary)

    def refresh_status(self, results: List[SearchResult]) -> List[SearchResult]:
        """Recompute opening status on results that were cached earlier."""
        now = self.clock()
        return [
            result.model_copy(
                update={
                    "status": self.status_engine.status(
                        result.venue.schedule, now, result.venue.business_status
                    )
                }
            )
            for result in results
        ]

    def _decorate(
        self, venues: List[Venue], origin: Optional[Tuple[float, float]]
    ) -> List[SearchResult]:
        now = self.clock()
        results = []
        for venue in venues:
            distance = None
            if origin is not None:
                distance = haversine_meters(origin[0], origin[1], venue.latitude, venue.longitude)
            results.append(
                SearchResult(
                    venue=venue,
                    distance_meters=round(distance, 1) if distance is not None else None,
                    formatted_distance=format_distance(distance) if distance is not None else None,
                    status=self.status_engine.status(venue.schedule, now, venue.business_status),
                )
            )
        return results

    async def _persist(self, venues: List[Venue]) -> None:
        if not venues:
            return
        try:
            await self.store.upsert_many(venues)
        except Exception as e:
            logger.error(f"Failed to upsert {len(venues)} venues: {e}")

    async def _load_stored(self, provider_id: str) -> Optional[Venue]:
        try:
            return await self.store.get(provider_id)
        except Exception as e:
            logger.error(f"Failed to load venue {provider_id} from store: {e}")
            return None

    def _validate_coordinates(self, latitude: float, longitude: float) -> None:
        if not is_valid_coordinates(latitude, longitude):
            raise InvalidInputError(f"Invalid coordinates provided: {latitude}, {longitude}")

    def _optional_origin(
        self, latitude: Optional[float], longitude: Optional[float]
    ) -> Optional[Tuple[float, float]]:
        if latitude is None and longitude is None:
            return None
        if latitude is None or longitude is None:
            raise InvalidInputError("Latitude and longitude must be provided together")
        self._validate_coordinates(latitude, longitude)
        return latitude, longitude

    def _validate_category(self, category: Union[VenueCategory, str]) -> VenueCategory:
        if isinstance(category, VenueCategory):
            return category
        try:
            return VenueCategory(str(category).strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in VenueCategory)
            raise InvalidInputError(f"Invalid place type {category!r}. Must be one of: {allowed}")

    def _validate_radius(self, radius: Optional[int]) -> int:
        if radius is None:
            return self.limits.default_radius
        if not self.limits.min_radius <= radius <= self.limits.max_radius:
            raise InvalidInputError(
                f"Radius must be between {self.limits.min_radius} and {self.limits.max_radius} meters"
            )
        return int(radius)

    def _validate_limit(self, limit: int) -> None:
        if not 1 <= limit <= self.limits.max_limit:
            raise InvalidInputError(f"Limit must be between 1 and {self.limits.max_limit}")

    def _validate_provider_id(self, provider_id: str) -> None:
        if not provider_id or not PROVIDER_ID_PATTERN.match(provider_id):
            raise InvalidInputError(f"Invalid place id: {provider_id!r}")
