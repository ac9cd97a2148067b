"""Tests for the search orchestrator: variants, scoring, merging and city autocomplete."""
import pytest

from conftest import make_place
from venuemap.models.cities import CityRecord
from venuemap.models.errors import InvalidInputError, NotFoundError, ProviderUnavailableError, RateLimitedError
from venuemap.models.places import SearchResult, Venue, VenueCategory
from venuemap.services.city_index import CityIndex
from venuemap.services.search import (
    MAX_VARIANTS,
    SearchOrchestrator,
    build_query_variants,
    score_candidate,
)

TORINO = CityRecord(
    id="001272", name="Torino", province="TO", is_capital=True,
    latitude=45.0703393, longitude=7.6868565,
)
TORRE_DEL_GRECO = CityRecord(
    id="063084", name="Torre del Greco", province="NA",
    latitude=40.7895369, longitude=14.3681364,
)


@pytest.fixture
def orchestrator(discovery, cache_store):
    return SearchOrchestrator(CityIndex([TORRE_DEL_GRECO, TORINO]), discovery, cache_store)


def candidate(name, rating=None, rating_count=None, address="Via Po 1, Torino", distance=None):
    venue = Venue(
        provider_id=name.replace(" ", "_"), name=name, address=address,
        latitude=45.07, longitude=7.68, category=VenueCategory.RESTAURANT,
        rating=rating, rating_count=rating_count,
    )
    return SearchResult(venue=venue, distance_meters=distance)


class TestVariants:
    def test_raw_query_comes_first(self):
        assert build_query_variants("Bar Centrale")[0] == "bar centrale"

    def test_keyword_expansion(self):
        assert build_query_variants("pizza") == ["pizza", "pizzeria", "pizza al taglio"]

    def test_category_term_is_added(self):
        assert build_query_variants("da mario", VenueCategory.RESTAURANT) == ["da mario", "ristorante da mario"]

    def test_category_term_not_repeated(self):
        assert build_query_variants("ristorante del cambio", VenueCategory.RESTAURANT) == ["ristorante del cambio"]

    def test_variants_are_capped(self):
        variants = build_query_variants("pizza e gelato", VenueCategory.RESTAURANT)
        assert len(variants) == MAX_VARIANTS
        assert variants[:2] == ["pizza e gelato", "ristorante pizza e gelato"]

    def test_accented_keyword_expands(self):
        assert "caffetteria" in build_query_variants("caffè")


class TestScoring:
    @pytest.mark.parametrize("name, expected", [
        ("Pizzeria Napoli", 100),
        ("Pizzeria Napoli Centro", 80),
        ("Da Gino Pizzeria Napoli", 60),
        ("Superpizzeria napolitana", 40),
        ("Antica Pizzeria Napoletana", 0),
    ])
    def test_name_match_tiers(self, name, expected):
        assert score_candidate(candidate(name), "pizzeria napoli") == expected

    def test_substring_and_address(self):
        assert score_candidate(candidate("Labarberia"), "barber") == 40
        assert score_candidate(candidate("Da Gino", address="Via Garibaldi 3"), "garibaldi") == 20

    def test_rating_and_popularity_bonuses(self):
        assert score_candidate(candidate("Trattoria", rating=4.6, rating_count=800), "trattoria") == 115
        assert score_candidate(candidate("Trattoria", rating=4.1, rating_count=150), "trattoria") == 107


class TestSearchCities:
    @pytest.mark.asyncio
    async def test_capital_first(self, orchestrator):
        results = await orchestrator.search_cities("tor")
        assert [c.name for c in results] == ["Torino", "Torre del Greco"]
        assert results[0].display_name == "Torino (TO)"

    @pytest.mark.asyncio
    async def test_short_query_is_empty(self, orchestrator):
        assert await orchestrator.search_cities("t") == []

    @pytest.mark.asyncio
    async def test_results_are_cached(self, orchestrator, cache_store):
        await orchestrator.search_cities("tor")
        await orchestrator.search_cities("TOR")
        assert cache_store.stats.hits == 1


class TestSearchPlacesInCity:
    @pytest.mark.asyncio
    async def test_unknown_city(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.search_places_in_city("000000", "pizza")

    @pytest.mark.asyncio
    async def test_invalid_input(self, orchestrator):
        with pytest.raises(InvalidInputError):
            await orchestrator.search_places_in_city("001272", "p")
        with pytest.raises(InvalidInputError):
            await orchestrator.search_places_in_city("001272", "pizza", category="pub")

    @pytest.mark.asyncio
    async def test_variants_are_issued_with_city_bias(self, orchestrator, provider):
        await orchestrator.search_places_in_city("001272", "pizza")

        text_calls = provider.calls_of("text")
        assert [call[1] for call in text_calls] == ["pizza torino", "pizzeria torino", "pizza al taglio torino"]
        assert all(call[2] == TORINO.latitude and call[3] == TORINO.longitude for call in text_calls)

    @pytest.mark.asyncio
    async def test_merges_dedupes_scores_and_filters(self, orchestrator, provider):
        provider.text_results = {
            "pizza torino": [
                make_place("p1", "Pizzeria Da Michele", types=["restaurant"], rating=4.2),
                make_place("p2", "Pizza", types=["restaurant"], rating=3.9),
                make_place("c1", "Bar Sport", types=["bar"]),
            ],
            "pizzeria torino": [
                make_place("p1", "Pizzeria Da Michele", types=["restaurant"], rating=4.2),
                make_place("p3", "Gelateria Pizza e Gelato", types=["restaurant"], rating=4.8),
            ],
        }

        results = await orchestrator.search_places_in_city("001272", "pizza", category="restaurant")

        ids = [r.venue.provider_id for r in results]
        assert ids == ["p2", "p3", "p1"]
        assert results[0].score == 100
        assert len(set(ids)) == len(ids)

    @pytest.mark.asyncio
    async def test_limit_applies_after_scoring(self, orchestrator, provider):
        provider.default_text_results = [
            make_place(f"p{i}", f"Trattoria {i}", types=["restaurant"]) for i in range(6)
        ] + [make_place("best", "Trattoria", types=["restaurant"])]

        results = await orchestrator.search_places_in_city("001272", "trattoria", limit=2)

        assert len(results) == 2
        assert results[0].venue.provider_id == "best"

    @pytest.mark.asyncio
    async def test_failed_variant_is_skipped(self, orchestrator, provider):
        provider.text_errors["pizzeria torino"] = ProviderUnavailableError("HTTP 503")
        provider.text_results["pizza torino"] = [make_place("p1", "Pizza Bella", types=["restaurant"])]

        results = await orchestrator.search_places_in_city("001272", "pizza")

        assert [r.venue.provider_id for r in results] == ["p1"]

    @pytest.mark.asyncio
    async def test_every_variant_failing_raises(self, orchestrator, provider):
        provider.error = RateLimitedError("too many requests")
        with pytest.raises(RateLimitedError):
            await orchestrator.search_places_in_city("001272", "pizza")

    @pytest.mark.asyncio
    async def test_city_results_are_cached(self, orchestrator, provider):
        provider.default_text_results = [make_place("p1", "Trattoria", types=["restaurant"])]

        await orchestrator.search_places_in_city("001272", "trattoria")
        calls = len(provider.calls)
        cached = await orchestrator.search_places_in_city("001272", "Trattoria ")

        assert len(provider.calls) == calls
        assert cached[0].venue.provider_id == "p1"
        assert cached[0].status is not None


class TestPopularSearches:
    def test_lists_per_category(self, orchestrator):
        cafe = orchestrator.popular_searches("cafe")
        assert cafe[0].query == "Bar Centrale"
        assert cafe[0].id == "popular_0"
        assert len(cafe) == 8
        assert orchestrator.popular_searches("restaurant", limit=2)[1].query == "Trattoria"
        assert orchestrator.popular_searches()[0].query == "McDonald's"
        assert orchestrator.popular_searches("all")[2].query == "Starbucks"

    def test_unknown_category(self, orchestrator):
        with pytest.raises(InvalidInputError):
            orchestrator.popular_searches("nightclub")
