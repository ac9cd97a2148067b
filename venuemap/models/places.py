"""Pydantic models for Places."""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

MINUTES_PER_DAY = 1440


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VenueCategory(str, Enum):
    """Domain venue categories."""
    CAFE = "cafe"
    RESTAURANT = "restaurant"


class BusinessStatus(str, Enum):
    """Business status as reported by the provider."""
    OPERATIONAL = "OPERATIONAL"
    CLOSED_TEMPORARILY = "CLOSED_TEMPORARILY"
    CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"


class Period(BaseModel):
    """A single open/close interval. A close minute <= open minute crosses midnight."""
    day: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    open_minute: int = Field(..., ge=0, lt=MINUTES_PER_DAY)
    close_minute: Optional[int] = Field(
        None, ge=0, le=MINUTES_PER_DAY, description="None means open-ended (24h)"
    )

    @property
    def is_overnight(self) -> bool:
        return self.close_minute is not None and self.close_minute <= self.open_minute


class WeeklySchedule(BaseModel):
    """Ordered set of periods in local venue time."""
    periods: List[Period] = Field(default_factory=list)
    weekday_text: List[str] = Field(default_factory=list)

    @field_validator("periods")
    @classmethod
    def _order_periods(cls, periods: List[Period]) -> List[Period]:
        return sorted(periods, key=lambda p: (p.day, p.open_minute))

    def for_day(self, day: int) -> List[Period]:
        return [period for period in self.periods if period.day == day]

    @property
    def is_empty(self) -> bool:
        return not self.periods


class Review(BaseModel):
    """A provider review, only present on detail fetches."""
    author_name: Optional[str] = None
    rating: Optional[float] = None
    text: Optional[str] = None
    relative_time: Optional[str] = None
    time: Optional[int] = None


class ProviderPlace(BaseModel):
    """Raw record returned by the place-data provider, before classification."""
    place_id: str
    name: str = ""
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    types: List[str] = Field(default_factory=list)
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    price_level: Optional[int] = None
    business_status: Optional[str] = None
    open_now: Optional[bool] = None
    periods: List[Period] = Field(default_factory=list)
    weekday_text: List[str] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list)
    phone: Optional[str] = None
    website: Optional[str] = None
    reviews: List[Review] = Field(default_factory=list)


class Venue(BaseModel):
    """A classified, domain-normalized place."""
    provider_id: str
    name: str
    address: str = ""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    category: VenueCategory
    rating: Optional[float] = Field(None, ge=0, le=5)
    rating_count: Optional[int] = Field(None, ge=0)
    price_level: Optional[int] = Field(None, ge=0, le=4)
    schedule: Optional[WeeklySchedule] = None
    photos: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)
    business_status: BusinessStatus = BusinessStatus.OPERATIONAL
    phone: Optional[str] = None
    website: Optional[str] = None
    reviews: List[Review] = Field(default_factory=list)
    last_refreshed: datetime = Field(default_factory=utc_now)

    def is_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        refreshed = self.last_refreshed
        if refreshed.tzinfo is None:
            refreshed = refreshed.replace(tzinfo=timezone.utc)
        return now - refreshed > max_age


class OpeningStatus(BaseModel):
    """Live open/closed state computed from a weekly schedule."""
    is_open: Optional[bool] = Field(None, description="None when hours are unknown")
    label: str
    closing_soon: bool = False
    minutes_until_close: Optional[int] = None
    next_change_minutes: Optional[int] = None
    next_change_time: Optional[datetime] = None


class SearchResult(BaseModel):
    """A ranked venue. Transient, never persisted."""
    venue: Venue
    distance_meters: Optional[float] = None
    formatted_distance: Optional[str] = None
    score: float = 0.0
    status: Optional[OpeningStatus] = None


class SearchResponse(BaseModel):
    """Response for nearby and text searches."""
    results: List[SearchResult]
    count: int


class PopularSearch(BaseModel):
    """A suggested query shown before the user types."""
    id: str
    query: str
    type: str = "popular"


class PopularSearchResponse(BaseModel):
    """Response for popular search suggestions."""
    results: List[PopularSearch]


class PlaceDetailsResponse(BaseModel):
    """Response for a single venue."""
    result: SearchResult
    photo_urls: List[str] = Field(default_factory=list)


class Bounds(BaseModel):
    """Map viewport: a latitude/longitude box."""
    north: float
    south: float
    east: float
    west: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.north + self.south) / 2, (self.east + self.west) / 2

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.south <= latitude <= self.north and self.west <= longitude <= self.east


class SearchCenter(BaseModel):
    latitude: float
    longitude: float


class BoundsSearchResponse(BaseModel):
    """Response for a viewport search."""
    results: List[SearchResult]
    count: int
    bounds: Bounds
    search_center: SearchCenter


class BatchLocation(BaseModel):
    """One point of a batch search."""
    latitude: float
    longitude: float
    radius: int = Field(1500, description="Search radius in meters")
    type: str = Field("cafe", description="Venue category: cafe or restaurant")
    limit: int = Field(10, description="Maximum number of results for this point")


class BatchSearchRequest(BaseModel):
    locations: List[BatchLocation]


class BatchLocationResult(BaseModel):
    """Outcome for one point; a failed point carries the error and no results."""
    location: BatchLocation
    success: bool
    results: List[SearchResult] = Field(default_factory=list)
    count: int = 0
    error: Optional[str] = None


class BatchSummary(BaseModel):
    total_locations: int
    successful_searches: int
    failed_searches: int
    total_places_found: int


class BatchSearchResponse(BaseModel):
    """Response for a batch search."""
    results: List[BatchLocationResult]
    summary: BatchSummary
