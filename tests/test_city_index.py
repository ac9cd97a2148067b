"""Tests for the gazetteer loader and the city prefix index."""
import json

import pytest

from venuemap.config import DEFAULT_GAZETTEER_PATH
from venuemap.models.cities import CityRecord
from venuemap.services.city_index import CityIndex, load_gazetteer, parse_gazetteer_entry


def city(id, name, province, is_capital=False, aliases=None):
    return CityRecord(
        id=id, name=name, province=province, is_capital=is_capital,
        aliases=aliases or [], latitude=45.0, longitude=7.0,
    )


@pytest.fixture
def index():
    return CityIndex([
        city("063084", "Torre del Greco", "NA"),
        city("001272", "Torino", "TO", is_capital=True),
        city("001275", "Torre Pellice", "TO"),
        city("001265", "Settimo Torinese", "TO"),
        city("021008", "Bolzano", "BZ", is_capital=True, aliases=["Bozen"]),
        city("040012", "Forlì", "FC", is_capital=True),
        city("099999", "Torino", "TO", is_capital=True),
    ])


class TestLookup:
    def test_capital_ranks_first(self, index):
        results = index.lookup("tor")
        assert results[0].name == "Torino"

    def test_prefix_matches_before_substring_matches(self, index):
        names = [c.name for c in index.lookup("tor")]
        assert names == ["Torino", "Torre del Greco", "Torre Pellice", "Settimo Torinese"]

    def test_duplicates_by_name_and_province_are_dropped(self, index):
        assert [c.name for c in index.lookup("torino")].count("Torino") == 1

    def test_limit_caps_results(self, index):
        assert len(index.lookup("tor", limit=2)) == 2

    def test_short_query_returns_nothing(self, index):
        assert index.lookup("t") == []
        assert index.lookup("  ") == []

    def test_name_with_province_and_alias(self, index):
        assert [c.id for c in index.lookup("torre pellice to")] == ["001275"]
        assert [c.name for c in index.lookup("boz")] == ["Bolzano"]

    def test_accents_are_ignored(self, index):
        assert [c.name for c in index.lookup("forli")] == ["Forlì"]
        assert [c.name for c in index.lookup("FORLÌ")] == ["Forlì"]

    def test_get_by_id(self, index):
        assert index.get("001272").name == "Torino"
        assert index.get("nope") is None


class TestGazetteer:
    def test_parse_istat_row(self):
        record = parse_gazetteer_entry({
            "codice_istat": "021008",
            "denominazione_ita": "Bolzano",
            "denominazione_ita_altra": "Bozen",
            "sigla_provincia": "BZ",
            "flag_capoluogo": "SI",
            "lat": "46.4982953",
            "lon": "11.3547582",
        })
        assert record.is_capital is True
        assert record.aliases == ["Bozen"]
        assert record.latitude == pytest.approx(46.4982953)
        assert record.display_name == "Bolzano (BZ)"

    def test_malformed_rows_are_skipped(self, tmp_path):
        path = tmp_path / "comuni.json"
        path.write_text(json.dumps([
            {"codice_istat": "1", "denominazione_ita": "Alfa", "sigla_provincia": "AA",
             "flag_capoluogo": "NO", "lat": "45.0", "lon": "7.0"},
            {"codice_istat": "2", "denominazione_ita": "Beta"},
            {"codice_istat": "3", "denominazione_ita": "Gamma", "sigla_provincia": "GG",
             "flag_capoluogo": "NO", "lat": "abc", "lon": "7.0"},
        ]), encoding="utf-8")

        assert [c.name for c in load_gazetteer(path)] == ["Alfa"]

    def test_bundled_gazetteer(self):
        index = CityIndex.from_gazetteer(DEFAULT_GAZETTEER_PATH)
        results = index.lookup("tor", limit=5)

        assert results[0].name == "Torino"
        assert results[0].is_capital is True
        assert "Torre del Greco" in [c.name for c in index.lookup("torre", limit=10)]
