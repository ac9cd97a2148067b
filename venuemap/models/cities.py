"""Pydantic models for the city gazetteer."""
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class CityRecord(BaseModel):
    """An entry of the static gazetteer. Immutable once loaded."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    aliases: List[str] = Field(default_factory=list)
    province: str
    is_capital: bool = False
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.province})"


class CitySuggestion(BaseModel):
    """Autocomplete entry returned to clients."""
    id: str
    name: str
    province: str
    display_name: str
    is_capital: bool
    latitude: float
    longitude: float

    @classmethod
    def from_record(cls, city: CityRecord) -> "CitySuggestion":
        return cls(
            id=city.id,
            name=city.name,
            province=city.province,
            display_name=city.display_name,
            is_capital=city.is_capital,
            latitude=city.latitude,
            longitude=city.longitude,
        )


class CitySearchResponse(BaseModel):
    """Response for city autocomplete."""
    results: List[CitySuggestion]
    count: int
