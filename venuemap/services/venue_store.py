"""Domain persistence for venues: upsert by provider id."""
import logging
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from venuemap.database import Base
from venuemap.models.places import BusinessStatus, Venue, VenueCategory, utc_now

logger = logging.getLogger(__name__)


class VenueRecord(Base):
    __tablename__ = "venues"

    provider_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False, default="")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    category = Column(String, nullable=False, index=True)
    rating = Column(Float, nullable=True)
    rating_count = Column(Integer, nullable=True)
    price_level = Column(Integer, nullable=True)
    business_status = Column(String, nullable=False, default="OPERATIONAL")
    payload = Column(JSON, nullable=False)
    last_refreshed = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def apply(self, venue: Venue) -> None:
        self.name = venue.name
        self.address = venue.address
        self.latitude = venue.latitude
        self.longitude = venue.longitude
        self.category = venue.category.value
        self.rating = venue.rating
        self.rating_count = venue.rating_count
        self.price_level = venue.price_level
        self.business_status = venue.business_status.value
        self.payload = venue.model_dump(mode="json")
        self.last_refreshed = venue.last_refreshed

    def to_venue(self) -> Venue:
        return Venue.model_validate(self.payload)


class VenueStore(Protocol):
    async def get(self, provider_id: str) -> Optional[Venue]: ...

    async def upsert(self, venue: Venue) -> None: ...

    async def upsert_many(self, venues: Iterable[Venue]) -> None: ...

    async def top_rated(self, category: VenueCategory, min_rating: float, limit: int) -> List[Venue]: ...


class SqlVenueStore:
    """Relational venue store on an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def get(self, provider_id: str) -> Optional[Venue]:
        async with self.session_factory() as session:
            record = await session.get(VenueRecord, provider_id)
            return record.to_venue() if record else None

    async def upsert(self, venue: Venue) -> None:
        await self.upsert_many([venue])

    async def upsert_many(self, venues: Iterable[Venue]) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                for venue in venues:
                    record = await session.get(VenueRecord, venue.provider_id)
                    if record is None:
                        record = VenueRecord(provider_id=venue.provider_id)
                        session.add(record)
                    record.apply(venue)

    async def top_rated(self, category: VenueCategory, min_rating: float, limit: int) -> List[Venue]:
        """Best rated operating venues of one category, newest first among equal ratings."""
        query = (
            select(VenueRecord)
            .where(
                VenueRecord.category == category.value,
                VenueRecord.rating >= min_rating,
                VenueRecord.business_status == BusinessStatus.OPERATIONAL.value,
            )
            .order_by(VenueRecord.rating.desc(), VenueRecord.created_at.desc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            records = (await session.execute(query)).scalars().all()
        return [record.to_venue() for record in records]


class MemoryVenueStore:
    """In-process venue store for tests and database-less runs."""

    def __init__(self) -> None:
        self.venues: Dict[str, Venue] = {}

    async def get(self, provider_id: str) -> Optional[Venue]:
        return self.venues.get(provider_id)

    async def upsert(self, venue: Venue) -> None:
        self.venues[venue.provider_id] = venue

    async def upsert_many(self, venues: Iterable[Venue]) -> None:
        for venue in venues:
            await self.upsert(venue)

    async def top_rated(self, category: VenueCategory, min_rating: float, limit: int) -> List[Venue]:
        matches = [
            venue
            for venue in self.venues.values()
            if venue.category == category
            and venue.rating is not None
            and venue.rating >= min_rating
            and venue.business_status == BusinessStatus.OPERATIONAL
        ]
        # Newest records first among equal ratings
        matches.reverse()
        matches.sort(key=lambda venue: venue.rating, reverse=True)
        return matches[:limit]
