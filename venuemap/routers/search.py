"""Search API router: city autocomplete, search inside a city and suggestions."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from venuemap.dependencies import get_search_orchestrator, raise_http_error
from venuemap.models.cities import CitySearchResponse
from venuemap.models.errors import DiscoveryError
from venuemap.models.places import PopularSearchResponse, SearchResponse
from venuemap.services.search import SearchOrchestrator

router = APIRouter(prefix="/search", tags=["search"])
logger = logging.getLogger(__name__)


@router.get("/cities", response_model=CitySearchResponse)
async def search_cities(
    q: str = Query(..., description="City name prefix"),
    limit: int = 10,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    try:
        cities = await orchestrator.search_cities(q, limit)
    except DiscoveryError as exc:
        raise_http_error(exc)

    return CitySearchResponse(results=cities, count=len(cities))


@router.get("/cities/{city_id}/places", response_model=SearchResponse)
async def search_places_in_city(
    city_id: str,
    q: str = Query(..., description="Venue name or keyword"),
    type: Optional[str] = Query(None, description="cafe, restaurant or all"),
    limit: int = 20,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    """Venues in a city matching `q`, best name matches first."""
    try:
        results = await orchestrator.search_places_in_city(city_id, q, category=type, limit=limit)
    except DiscoveryError as exc:
        raise_http_error(exc)

    return SearchResponse(results=results, count=len(results))


@router.get("/popular", response_model=PopularSearchResponse)
async def popular_searches(
    type: Optional[str] = None,
    limit: int = 8,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    try:
        suggestions = orchestrator.popular_searches(type, limit)
    except DiscoveryError as exc:
        raise_http_error(exc)

    return PopularSearchResponse(results=suggestions)
