"""Places API router: nearby, text, viewport and batch searches, popular venues and venue details."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from venuemap.dependencies import get_discovery_service, get_places_client, raise_http_error
from venuemap.models.errors import DiscoveryError
from venuemap.models.places import (
    BatchSearchRequest,
    BatchSearchResponse,
    Bounds,
    BoundsSearchResponse,
    PlaceDetailsResponse,
    SearchCenter,
    SearchResponse,
)
from venuemap.services.discovery import DiscoveryService
from venuemap.services.google_places import GooglePlacesClient

router = APIRouter(prefix="/places", tags=["places"])
logger = logging.getLogger(__name__)


@router.get("/nearby", response_model=SearchResponse)
async def search_nearby(
    lat: float = Query(..., description="Latitude of the search center"),
    lon: float = Query(..., description="Longitude of the search center"),
    type: str = Query("cafe", description="Venue category: cafe or restaurant"),
    radius: Optional[int] = Query(None, description="Search radius in meters"),
    limit: int = Query(20, description="Maximum number of results"),
    discovery: DiscoveryService = Depends(get_discovery_service),
):
    """Cafes or restaurants around a point, closest and best rated first."""
    try:
        results = await discovery.search_nearby(lat, lon, type, radius=radius, limit=limit)
    except DiscoveryError as exc:
        raise_http_error(exc)

    return SearchResponse(results=results, count=len(results))


@router.get("/search", response_model=SearchResponse)
async def search_places(
    q: str = Query(..., description="Free-text query"),
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    limit: int = 20,
    discovery: DiscoveryService = Depends(get_discovery_service),
):
    """Free-text venue search, biased towards `lat`/`lon` when given."""
    try:
        results = await discovery.search_by_text(q, latitude=lat, longitude=lon, limit=limit)
    except DiscoveryError as exc:
        raise_http_error(exc)

    return SearchResponse(results=results, count=len(results))


@router.get("/popular/{type}", response_model=SearchResponse)
async def get_popular_places(
    type: str,
    min_rating: float = Query(4.0, description="Lowest rating to include"),
    limit: int = 10,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
):
    """Best rated venues of one category among those already discovered."""
    try:
        results = await discovery.popular_places(
            type, min_rating=min_rating, limit=limit, latitude=lat, longitude=lon
        )
    except DiscoveryError as exc:
        raise_http_error(exc)

    return SearchResponse(results=results, count=len(results))


@router.get("/bounds", response_model=BoundsSearchResponse)
async def get_places_within_bounds(
    north: float = Query(..., description="Northern latitude of the viewport"),
    south: float = Query(..., description="Southern latitude of the viewport"),
    east: float = Query(..., description="Eastern longitude of the viewport"),
    west: float = Query(..., description="Western longitude of the viewport"),
    type: str = "cafe",
    limit: int = 50,
    discovery: DiscoveryService = Depends(get_discovery_service),
):
    bounds = Bounds(north=north, south=south, east=east, west=west)
    try:
        results = await discovery.search_within_bounds(bounds, type, limit=limit)
    except DiscoveryError as exc:
        raise_http_error(exc)

    center_lat, center_lon = bounds.center
    return BoundsSearchResponse(
        results=results,
        count=len(results),
        bounds=bounds,
        search_center=SearchCenter(latitude=center_lat, longitude=center_lon),
    )


@router.post("/batch-search", response_model=BatchSearchResponse)
async def batch_search(
    request: BatchSearchRequest,
    discovery: DiscoveryService = Depends(get_discovery_service),
):
    """Nearby searches for up to 10 points; each point reports its own success or error."""
    try:
        return await discovery.batch_search(request.locations)
    except DiscoveryError as exc:
        raise_http_error(exc)


@router.get("/{provider_id}", response_model=PlaceDetailsResponse)
async def get_place(
    provider_id: str,
    refresh: bool = Query(False, description="Skip cached and stored data"),
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    places_client: GooglePlacesClient = Depends(get_places_client),
):
    """
    Full venue record with live opening status.

    Served from cache or the venue store when fresh; falls back to the last
    known record when the provider is unreachable.
    """
    try:
        result = await discovery.get_details(
            provider_id, force_refresh=refresh, latitude=lat, longitude=lon
        )
    except DiscoveryError as exc:
        raise_http_error(exc)

    photo_urls = [
        url
        for url in (places_client.photo_url(ref, max_width=800, max_height=600) for ref in result.venue.photos)
        if url
    ]
    return PlaceDetailsResponse(result=result, photo_urls=photo_urls)
