"""
Search orchestrator: city autocomplete and free-text venue search inside a city.

A city search fans out into a few query variants (the raw query, the query
with the category term, keyword expansions), runs each one through the
discovery service, merges the candidates and scores them against the query.
"""
import logging
from typing import Dict, List, Optional, Union

from venuemap.models.cities import CityRecord, CitySuggestion
from venuemap.models.errors import (
    DiscoveryError,
    InvalidInputError,
    NotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
)
from venuemap.models.places import PopularSearch, SearchResult, VenueCategory
from venuemap.services.cache_store import CacheStore, TypedCache
from venuemap.services.city_index import CityIndex
from venuemap.services.discovery import DiscoveryService
from venuemap.utils.cache_keys import CacheCategory, city_places_key, city_search_key
from venuemap.utils.normalizers import contains_word, normalize_name, normalize_query

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_VARIANTS = 3

CATEGORY_TERMS = {
    VenueCategory.CAFE: "bar",
    VenueCategory.RESTAURANT: "ristorante",
}

# keyword found in the query -> extra queries worth trying
KEYWORD_EXPANSIONS = {
    "pizza": ["pizzeria", "pizza al taglio"],
    "gelato": ["gelateria"],
    "caffe": ["caffetteria", "bar"],
    "coffee": ["caffetteria", "bar"],
    "colazione": ["pasticceria", "caffetteria"],
    "brioche": ["pasticceria"],
    "aperitivo": ["wine bar", "cocktail bar"],
    "sushi": ["ristorante giapponese"],
    "burger": ["hamburgeria"],
    "pasta": ["trattoria", "osteria"],
}

POPULAR_SEARCHES = {
    VenueCategory.CAFE: [
        "Bar Centrale", "Caffè Torino", "Pasticceria", "Bar Sport",
        "Caffetteria", "Lavazza", "Bar Italia", "Gelateria",
    ],
    VenueCategory.RESTAURANT: [
        "Pizzeria", "Trattoria", "Ristorante", "Osteria",
        "Tavola Calda", "Rosticceria", "Sushi", "Pizzeria da Asporto",
    ],
    None: [
        "McDonald's", "Burger King", "Starbucks", "KFC",
        "Bar Centrale", "Pizzeria", "Ristorante", "Gelateria",
    ],
}

# Match scores, strongest first
SCORE_EXACT = 100
SCORE_PREFIX = 80
SCORE_WORD = 60
SCORE_SUBSTRING = 40
SCORE_ADDRESS = 20


def build_query_variants(query: str, category: Optional[VenueCategory] = None) -> List[str]:
    """Distinct search variants for `query`, most specific first, capped at MAX_VARIANTS."""
    base = normalize_query(query)
    variants = [base]
    if category is not None:
        term = CATEGORY_TERMS[category]
        if not contains_word(base, term):
            variants.append(f"{term} {base}")

    folded = normalize_name(base)
    for keyword, expansions in KEYWORD_EXPANSIONS.items():
        if contains_word(folded, keyword):
            variants.extend(expansions)

    return list(dict.fromkeys(variants))[:MAX_VARIANTS]


def score_candidate(result: SearchResult, query: str) -> float:
    """Match strength of a candidate's name and address, plus rating and popularity bonuses."""
    needle = normalize_name(query)
    name = normalize_name(result.venue.name)
    address = normalize_name(result.venue.address)

    if name == needle:
        score = SCORE_EXACT
    elif name.startswith(needle):
        score = SCORE_PREFIX
    elif contains_word(name, needle):
        score = SCORE_WORD
    elif needle in name:
        score = SCORE_SUBSTRING
    elif needle in address:
        score = SCORE_ADDRESS
    else:
        score = 0

    rating = result.venue.rating or 0.0
    if rating >= 4.5:
        score += 10
    elif rating >= 4.0:
        score += 5

    rating_count = result.venue.rating_count or 0
    if rating_count >= 500:
        score += 5
    elif rating_count >= 100:
        score += 2

    return float(score)


def _final_order(result: SearchResult):
    distance = result.distance_meters if result.distance_meters is not None else float("inf")
    return -result.score, -(result.venue.rating or 0.0), distance


class SearchOrchestrator:
    """City autocomplete plus multi-variant venue search scoped to a city."""

    def __init__(
        self,
        city_index: CityIndex,
        discovery: DiscoveryService,
        cache: CacheStore,
        max_limit: int = 50,
    ) -> None:
        self.city_index = city_index
        self.discovery = discovery
        self.max_limit = max_limit
        self.city_cache: TypedCache[List[CitySuggestion]] = TypedCache(
            cache, CacheCategory.CITY, List[CitySuggestion]
        )
        self.city_places_cache: TypedCache[List[SearchResult]] = TypedCache(
            cache, CacheCategory.CITY_PLACES, List[SearchResult]
        )

    async def search_cities(self, query: str, limit: int = 10) -> List[CitySuggestion]:
        """Autocomplete suggestions; short queries return an empty list."""
        normalized = normalize_query(query)
        if len(normalized) < MIN_QUERY_LENGTH:
            return []
        self._validate_limit(limit)

        key = city_search_key(normalized, limit)
        cached = await self.city_cache.get(key)
        if cached is not None:
            logger.debug(f"City search cache hit for {normalized!r}")
            return cached

        suggestions = [CitySuggestion.from_record(city) for city in self.city_index.lookup(normalized, limit)]
        await self.city_cache.set(key, suggestions)
        logger.info(f"Found {len(suggestions)} cities for {normalized!r}")
        return suggestions

    async def search_places_in_city(
        self,
        city_id: str,
        query: str,
        category: Optional[Union[VenueCategory, str]] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        """
        Venues matching `query` in a city, scored by name match.

        Raises:
            NotFoundError: unknown city id.
            InvalidInputError: query too short, bad category or limit.
            ProviderUnavailableError / RateLimitedError: every variant failed.
        """
        city = self.city_index.get(city_id)
        if city is None:
            raise NotFoundError(f"City not found: {city_id}")

        normalized = normalize_query(query)
        if len(normalized) < MIN_QUERY_LENGTH:
            raise InvalidInputError(f"Search query must be at least {MIN_QUERY_LENGTH} characters")
        category = self._parse_category(category)
        self._validate_limit(limit)

        key = city_places_key(city.id, normalized, category.value if category else None, limit)
        cached = await self.city_places_cache.get(key)
        if cached is not None:
            logger.debug(f"City places cache hit for {key}")
            return self.discovery.refresh_status(cached)

        candidates = await self._gather_candidates(city, normalized, category)

        scored = [
            result.model_copy(update={"score": score_candidate(result, normalized)})
            for result in candidates.values()
        ]
        scored.sort(key=_final_order)
        results = scored[:limit]

        await self.city_places_cache.set(key, results)
        logger.info(
            f"City search {normalized!r} in {city.display_name}: "
            f"{len(candidates)} candidates, returning {len(results)}"
        )
        return results

    def popular_searches(
        self, category: Optional[Union[VenueCategory, str]] = None, limit: int = 8
    ) -> List[PopularSearch]:
        category = self._parse_category(category)
        queries = POPULAR_SEARCHES[category][:max(limit, 0)]
        return [PopularSearch(id=f"popular_{index}", query=query) for index, query in enumerate(queries)]

    async def _gather_candidates(
        self, city: CityRecord, query: str, category: Optional[VenueCategory]
    ) -> Dict[str, SearchResult]:
        candidates: Dict[str, SearchResult] = {}
        last_error: Optional[DiscoveryError] = None
        succeeded = 0

        for variant in build_query_variants(query, category):
            try:
                results = await self.discovery.search_by_text(
                    f"{variant} {city.name}",
                    latitude=city.latitude,
                    longitude=city.longitude,
                    limit=self.max_limit,
                )
            except (ProviderUnavailableError, RateLimitedError) as exc:
                logger.warning(f"Variant {variant!r} failed for {city.display_name}: {exc.message}")
                last_error = exc
                continue

            succeeded += 1
            for result in results:
                if category is not None and result.venue.category != category:
                    continue
                candidates.setdefault(result.venue.provider_id, result)

        if not succeeded and last_error is not None:
            raise last_error
        return candidates

    def _parse_category(self, category: Optional[Union[VenueCategory, str]]) -> Optional[VenueCategory]:
        if category is None or isinstance(category, VenueCategory):
            return category
        value = str(category).strip().lower()
        if value in ("", "all"):
            return None
        try:
            return VenueCategory(value)
        except ValueError:
            raise InvalidInputError(f"Invalid place type {category!r}. Must be one of: cafe, restaurant, all")

    def _validate_limit(self, limit: int) -> None:
        if not 1 <= limit <= self.max_limit:
            raise InvalidInputError(f"Limit must be between 1 and {self.max_limit}")
