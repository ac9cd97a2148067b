"""Client for the Google Places web service (nearby, text search, details)."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from venuemap.models.errors import (
    NotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
)
from venuemap.models.places import Period, ProviderPlace, Review

logger = logging.getLogger(__name__)

PLACES_BASE = "https://maps.googleapis.com/maps/api/place"

DETAIL_FIELDS = [
    "place_id",
    "name",
    "formatted_address",
    "geometry",
    "rating",
    "user_ratings_total",
    "price_level",
    "opening_hours",
    "formatted_phone_number",
    "website",
    "photos",
    "reviews",
    "types",
    "business_status",
]

# Primary provider type requested for each domain category
CATEGORY_TYPE_HINTS = {
    "cafe": "cafe",
    "restaurant": "restaurant",
}


class GooglePlacesClient:
    """HTTP client wrapper for the Google Places API."""

    def __init__(
        self,
        api_key: Optional[str],
        language: str = "it",
        region: str = "it",
        timeout: float = 10.0,
        base_url: str = PLACES_BASE,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            logger.warning("Google Places API key not configured")
        self.api_key = api_key
        self.language = language
        self.region = region
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def nearby_search(
        self, latitude: float, longitude: float, radius: int, category_hint: Optional[str] = None
    ) -> List[ProviderPlace]:
        """Places around a point, optionally restricted to a provider type."""
        params: Dict[str, Any] = {
            "location": f"{latitude},{longitude}",
            "radius": radius,
        }
        type_hint = CATEGORY_TYPE_HINTS.get(category_hint or "", category_hint)
        if type_hint:
            params["type"] = type_hint

        data = await self._request("nearbysearch", params)
        return _parse_results(data.get("results") or [])

    async def text_search(
        self,
        query: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius: Optional[int] = None,
    ) -> List[ProviderPlace]:
        """Free-text search with an optional location bias."""
        params: Dict[str, Any] = {"query": query}
        if latitude is not None and longitude is not None:
            params["location"] = f"{latitude},{longitude}"
            if radius:
                params["radius"] = radius

        data = await self._request("textsearch", params)
        return _parse_results(data.get("results") or [])

    async def details(self, place_id: str) -> ProviderPlace:
        """Full record with phone, website, opening hours, photos and reviews."""
        params = {"place_id": place_id, "fields": ",".join(DETAIL_FIELDS)}
        data = await self._request("details", params)
        result = data.get("result")
        if not result:
            raise NotFoundError(f"Place not found: {place_id}")
        return parse_place(result)

    def photo_url(
        self, photo_reference: Optional[str], max_width: int = 400, max_height: int = 400
    ) -> Optional[str]:
        """Build the photo media URL for a photo reference."""
        if not photo_reference or not self.api_key:
            return None
        return str(
            httpx.URL(
                f"{self.base_url}/photo",
                params={
                    "maxwidth": max_width,
                    "maxheight": max_height,
                    "photoreference": photo_reference,
                    "key": self.api_key,
                },
            )
        )

    async def _request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderUnavailableError("Google Places API key not configured")

        url = f"{self.base_url}/{endpoint}/json"
        query = {
            **params,
            "language": self.language,
            "region": self.region,
            "key": self.api_key,
        }

        client = await self._get_client()
        try:
            response = await client.get(url, params=query)
        except httpx.RequestError as exc:
            logger.error(f"Failed to reach Google Places ({endpoint}): {exc}")
            raise ProviderUnavailableError(f"Failed to reach place provider: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError(
                "Place provider rate limit exceeded",
                retry_after=_retry_after(response),
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"Google Places HTTP error: {exc.response.status_code} - {exc.response.text}")
            raise ProviderUnavailableError(
                f"Place provider error: HTTP {exc.response.status_code}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            logger.error(f"Google Places returned a non-JSON body for {endpoint}: {response.text[:200]}")
            raise ProviderUnavailableError("Place provider returned an unreadable response") from exc
        if not isinstance(data, dict):
            raise ProviderUnavailableError("Place provider returned an unreadable response")

        status = data.get("status")
        if status in ("OK", "ZERO_RESULTS"):
            return data
        if status == "OVER_QUERY_LIMIT":
            raise RateLimitedError("Place provider quota exceeded")
        if endpoint == "details" and status in ("NOT_FOUND", "INVALID_REQUEST"):
            raise NotFoundError(f"Place not found: {params.get('place_id')}")

        message = data.get("error_message") or "no message"
        logger.error(f"Google Places returned status {status} for {endpoint}: {message}")
        raise ProviderUnavailableError(f"Place provider returned {status}: {message}")


def _retry_after(response: httpx.Response) -> Optional[float]:
    header = response.headers.get("Retry-After")
    if not header:
        return None
    try:
        return float(header)
    except ValueError:
        return None


def _parse_results(results: List[Dict[str, Any]]) -> List[ProviderPlace]:
    places = []
    for result in results:
        if not result.get("place_id"):
            logger.debug(f"Skipping provider result without place_id: {result.get('name')}")
            continue
        places.append(parse_place(result))
    return places


def parse_place(result: Dict[str, Any]) -> ProviderPlace:
    """Map a raw Google Places result into a `ProviderPlace`."""
    location = (result.get("geometry") or {}).get("location") or {}
    hours = result.get("opening_hours") or {}

    return ProviderPlace(
        place_id=result["place_id"],
        name=result.get("name") or "",
        address=result.get("formatted_address") or result.get("vicinity") or "",
        latitude=_as_float(location.get("lat")),
        longitude=_as_float(location.get("lng")),
        types=list(result.get("types") or []),
        rating=_as_float(result.get("rating")),
        rating_count=_as_int(result.get("user_ratings_total")),
        price_level=_as_int(result.get("price_level")),
        business_status=result.get("business_status"),
        open_now=hours.get("open_now"),
        periods=parse_periods(hours.get("periods") or []),
        weekday_text=list(hours.get("weekday_text") or []),
        photos=[
            photo["photo_reference"]
            for photo in result.get("photos") or []
            if photo.get("photo_reference")
        ],
        phone=result.get("formatted_phone_number"),
        website=result.get("website"),
        reviews=[
            Review(
                author_name=review.get("author_name"),
                rating=_as_float(review.get("rating")),
                text=review.get("text"),
                relative_time=review.get("relative_time_description"),
                time=_as_int(review.get("time")),
            )
            for review in result.get("reviews") or []
        ],
    )


def parse_periods(raw_periods: List[Dict[str, Any]]) -> List[Period]:
    """
    Convert provider periods into `Period` objects.

    Provider periods look like {"open": {"day": 5, "time": "2200"},
    "close": {"day": 6, "time": "0200"}}. A missing close means open around
    the clock. Malformed entries are dropped.
    """
    periods = []
    for raw in raw_periods:
        open_part = raw.get("open") or {}
        close_part = raw.get("close")
        day = _as_int(open_part.get("day"))
        open_minute = _hhmm_to_minutes(open_part.get("time"))
        if day is None or not 0 <= day <= 6 or open_minute is None or open_minute >= 1440:
            logger.debug(f"Dropping malformed opening period: {raw}")
            continue

        close_minute = None
        if close_part:
            close_minute = _hhmm_to_minutes(close_part.get("time"))
            close_day = _as_int(close_part.get("day"))
            # A period spanning more than one midnight cannot be expressed; treat it as open-ended
            if close_day is not None and close_day != day and close_minute is not None and close_minute > open_minute:
                close_minute = None

        periods.append(Period(day=day, open_minute=open_minute, close_minute=close_minute))
    return periods


def _hhmm_to_minutes(value: Any) -> Optional[int]:
    if not isinstance(value, str) or len(value) != 4 or not value.isdigit():
        return None
    hours, minutes = int(value[:2]), int(value[2:])
    if hours > 24 or minutes > 59 or (hours == 24 and minutes):
        return None
    return hours * 60 + minutes


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
