"""
In-memory city index built once from the ISTAT comuni gazetteer.

Each city is reachable through its lowercased name, "name province" and any
alternate-language name. Terms are kept sorted so prefix lookups are a binary
search followed by a short forward scan.
"""
import json
import logging
from bisect import bisect_left
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from venuemap.models.cities import CityRecord
from venuemap.utils.normalizers import fold_accents, normalize_query

logger = logging.getLogger(__name__)

MIN_PREFIX_LENGTH = 2


def _term(text: str) -> str:
    return fold_accents(normalize_query(text))


def _search_terms(city: CityRecord) -> List[str]:
    terms = [_term(city.name), _term(f"{city.name} {city.province}")]
    terms.extend(_term(alias) for alias in city.aliases)
    return list(dict.fromkeys(term for term in terms if term))


def parse_gazetteer_entry(entry: Dict[str, Any]) -> CityRecord:
    """Map one row of the ISTAT export (Italian field names) to a `CityRecord`."""
    alternate = entry.get("denominazione_ita_altra")
    return CityRecord(
        id=str(entry["codice_istat"]),
        name=entry["denominazione_ita"],
        aliases=[alternate] if alternate else [],
        province=entry["sigla_provincia"],
        is_capital=entry.get("flag_capoluogo") == "SI",
        latitude=float(entry["lat"]),
        longitude=float(entry["lon"]),
    )


def load_gazetteer(path: Union[str, Path]) -> List[CityRecord]:
    """Read the gazetteer file; malformed rows are skipped."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    cities = []
    skipped = 0
    for entry in raw:
        try:
            cities.append(parse_gazetteer_entry(entry))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            skipped += 1
            logger.debug(f"Skipping gazetteer row {entry!r}: {e}")

    if skipped:
        logger.warning(f"Skipped {skipped} malformed gazetteer rows")
    logger.info(f"Loaded {len(cities)} cities from {path}")
    return cities


class CityIndex:
    """Read-only prefix index over the gazetteer. Safe to share between tasks."""

    def __init__(self, cities: Iterable[CityRecord]) -> None:
        self._by_id: Dict[str, CityRecord] = {}
        self._by_term: Dict[str, List[CityRecord]] = {}

        for city in cities:
            self._by_id[city.id] = city
            for term in _search_terms(city):
                self._by_term.setdefault(term, []).append(city)

        self._terms = sorted(self._by_term)
        logger.info(f"City index built with {len(self._terms)} search terms")

    @classmethod
    def from_gazetteer(cls, path: Union[str, Path]) -> "CityIndex":
        return cls(load_gazetteer(path))

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, city_id: str) -> Optional[CityRecord]:
        return self._by_id.get(city_id)

    def lookup(self, prefix: str, limit: int = 10) -> List[CityRecord]:
        """
        Cities matching `prefix`, at most `limit`.

        Prefix matches come before substring matches. Within each group,
        province capitals come first, then names in alphabetical order.
        Queries shorter than two characters return nothing.
        """
        query = _term(prefix)
        if len(query) < MIN_PREFIX_LENGTH or limit < 1:
            return []

        seen: Dict[Tuple[str, str], CityRecord] = {}

        prefix_matches = []
        for term in self._prefix_terms(query):
            prefix_matches.extend(self._collect(term, seen))

        partial_matches = []
        if len(seen) < limit:
            for term in self._terms:
                if query in term and not term.startswith(query):
                    partial_matches.extend(self._collect(term, seen))

        ordered = sorted(prefix_matches, key=_city_order) + sorted(partial_matches, key=_city_order)
        return ordered[:limit]

    def _prefix_terms(self, query: str) -> Iterable[str]:
        position = bisect_left(self._terms, query)
        while position < len(self._terms) and self._terms[position].startswith(query):
            yield self._terms[position]
            position += 1

    def _collect(self, term: str, seen: Dict[Tuple[str, str], CityRecord]) -> List[CityRecord]:
        fresh = []
        for city in self._by_term[term]:
            key = (city.name, city.province)
            if key not in seen:
                seen[key] = city
                fresh.append(city)
        return fresh


def _city_order(city: CityRecord) -> Tuple[bool, str]:
    return not city.is_capital, city.name.lower()
