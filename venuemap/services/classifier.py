"""
Venue classifier.

Turns raw provider records into domain venues. Provider type tags are noisy
(a hotel restaurant carries both "restaurant" and "lodging"), so exclusion is
checked first and wins over every positive signal:

1. hard exclusion by provider type or by name keyword
2. restaurant signal
3. cafe signal
4. secondary food keywords (lodging-style -> restaurant, drink-style -> cafe)
5. anything else is dropped
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from venuemap.models.places import (
    BusinessStatus,
    ProviderPlace,
    Venue,
    VenueCategory,
    WeeklySchedule,
    utc_now,
)
from venuemap.utils.geo import is_valid_coordinates
from venuemap.utils.normalizers import contains_any_word, normalize_name

logger = logging.getLogger(__name__)

EXCLUDED_TYPES = frozenset({
    # lodging
    "lodging", "campground", "rv_park",
    # fuel and vehicles
    "gas_station", "car_dealer", "car_rental", "car_repair", "car_wash", "parking",
    # medical
    "hospital", "pharmacy", "drugstore", "doctor", "dentist", "physiotherapist",
    "veterinary_care", "health",
    # finance
    "bank", "atm", "finance", "accounting", "insurance_agency",
    # retail
    "supermarket", "grocery_or_supermarket", "convenience_store", "department_store",
    "shopping_mall", "clothing_store", "shoe_store", "electronics_store",
    "hardware_store", "home_goods_store", "furniture_store", "jewelry_store",
    "book_store", "pet_store", "liquor_store", "florist",
    # government
    "local_government_office", "city_hall", "courthouse", "embassy", "police",
    "post_office", "fire_station",
    # transit infrastructure
    "transit_station", "train_station", "bus_station", "subway_station",
    "light_rail_station", "airport", "taxi_stand",
})

EXCLUDED_NAME_KEYWORDS = (
    # lodging
    "hotel", "hostel", "ostello", "albergo", "b&b", "bed and breakfast", "residence", "motel",
    # pharmacies and medical
    "farmacia", "pharmacy", "parafarmacia", "ospedale", "clinica", "poliambulatorio",
    # supermarket chains
    "supermercato", "supermarket", "ipermercato", "esselunga", "carrefour", "conad",
    "coop", "lidl", "eurospin", "penny market", "in's mercato", "md discount", "pam panorama",
    # fuel brands
    "distributore", "stazione di servizio", "eni station", "enilive", "q8", "tamoil",
    "esso", "agip", "api ip",
    # banks
    "banca", "bank", "bancomat",
)

RESTAURANT_TYPES = frozenset({"restaurant", "meal_delivery", "meal_takeaway"})
RESTAURANT_KEYWORDS = (
    "ristorante", "restaurant", "pizzeria", "pizza", "trattoria", "osteria",
    "tavola calda", "rosticceria", "hamburgeria", "burger", "sushi", "kebab",
    "piadineria", "braceria", "steakhouse", "bistrot", "bistro",
)

CAFE_TYPES = frozenset({"cafe", "bar", "bakery"})
CAFE_KEYWORDS = (
    "bar", "caffe", "cafe", "caffetteria", "coffee", "pasticceria", "gelateria",
    "panetteria", "panificio", "cremeria", "torrefazione",
)

SECONDARY_RESTAURANT_KEYWORDS = ("agriturismo", "locanda", "taverna", "tavern")
SECONDARY_CAFE_KEYWORDS = ("wine bar", "enoteca", "pub", "birreria", "brewery", "cocktail")


@dataclass(frozen=True)
class Classification:
    category: Optional[VenueCategory]
    included: bool
    reason: str


class VenueClassifier:
    """Exclusion-first classifier for provider records."""

    def classify(self, place: ProviderPlace) -> Classification:
        """Decide the category of a record. Never raises."""
        name = normalize_name(place.name)
        types = {t.lower() for t in place.types}

        excluded_types = types & EXCLUDED_TYPES
        if excluded_types:
            return Classification(None, False, f"excluded type {sorted(excluded_types)[0]}")
        if contains_any_word(name, EXCLUDED_NAME_KEYWORDS):
            return Classification(None, False, "excluded name keyword")

        if types & RESTAURANT_TYPES or contains_any_word(name, RESTAURANT_KEYWORDS):
            return Classification(VenueCategory.RESTAURANT, True, "restaurant signal")
        if types & CAFE_TYPES or contains_any_word(name, CAFE_KEYWORDS):
            return Classification(VenueCategory.CAFE, True, "cafe signal")

        if contains_any_word(name, SECONDARY_RESTAURANT_KEYWORDS):
            return Classification(VenueCategory.RESTAURANT, True, "lodging-style food keyword")
        if contains_any_word(name, SECONDARY_CAFE_KEYWORDS):
            return Classification(VenueCategory.CAFE, True, "drink-style food keyword")

        return Classification(None, False, "no food or drink signal")

    def to_venue(self, place: ProviderPlace, refreshed_at: Optional[datetime] = None) -> Optional[Venue]:
        """Validate and classify a record; None when the record is rejected or excluded."""
        if not place.place_id or not place.name.strip():
            logger.debug(f"Rejecting record without id or name: {place.place_id!r}")
            return None
        if not is_valid_coordinates(place.latitude, place.longitude):
            logger.debug(f"Rejecting {place.place_id}: invalid coordinates {place.latitude},{place.longitude}")
            return None

        result = self.classify(place)
        if not result.included:
            logger.debug(f"Excluding {place.name!r} ({place.place_id}): {result.reason}")
            return None

        return Venue(
            provider_id=place.place_id,
            name=place.name.strip(),
            address=place.address,
            latitude=place.latitude,
            longitude=place.longitude,
            category=result.category,
            rating=_clamp(place.rating, 0, 5),
            rating_count=_in_range(place.rating_count, 0, None),
            price_level=_in_range(place.price_level, 0, 4),
            schedule=(
                WeeklySchedule(periods=place.periods, weekday_text=place.weekday_text)
                if place.periods or place.weekday_text
                else None
            ),
            photos=place.photos,
            types=place.types,
            business_status=_business_status(place.business_status),
            phone=place.phone,
            website=place.website,
            reviews=place.reviews,
            last_refreshed=refreshed_at or utc_now(),
        )

    def to_venues(self, places: Iterable[ProviderPlace]) -> List[Venue]:
        refreshed_at = utc_now()
        venues = []
        for place in places:
            venue = self.to_venue(place, refreshed_at)
            if venue is not None:
                venues.append(venue)
        return venues


def _clamp(value: Optional[float], low: float, high: float) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return min(max(value, low), high)


def _in_range(value: Optional[int], low: int, high: Optional[int]) -> Optional[int]:
    if value is None or value < low or (high is not None and value > high):
        return None
    return value


def _business_status(raw: Optional[str]) -> BusinessStatus:
    try:
        return BusinessStatus(raw) if raw else BusinessStatus.OPERATIONAL
    except ValueError:
        return BusinessStatus.OPERATIONAL
