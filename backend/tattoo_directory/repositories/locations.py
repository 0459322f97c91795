from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.models import Artist, City, Country, State
from tattoo_directory.repositories.base import insert_ignoring_duplicates
from tattoo_directory.schemas.artist import ArtistSummary
from tattoo_directory.schemas.location import CityStatsOut, CityWithArtistsOut, StateOut


class LocationRepository:
    """Natural-key lookups and conflict-free inserts for the location taxonomy."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_country_id(self, name: str) -> Optional[int]:
        return await self.session.scalar(
            select(Country.id).where(Country.country_name == name)
        )

    async def insert_country(self, name: str, code: str = "") -> bool:
        return await insert_ignoring_duplicates(
            self.session, Country, {"country_name": name, "country_code": code}, ["country_name"]
        )

    async def update_country(self, country_id: int, values: dict[str, Any]) -> bool:
        if not values:
            return await self.country_exists(country_id)
        result = await self.session.execute(
            update(Country).where(Country.id == country_id).values(**values)
        )
        return result.rowcount > 0

    async def country_exists(self, country_id: int) -> bool:
        found = await self.session.scalar(select(Country.id).where(Country.id == country_id))
        return found is not None

    async def state_exists(self, state_id: int) -> bool:
        return await self.session.scalar(select(State.id).where(State.id == state_id)) is not None

    async def list_states(self) -> list[StateOut]:
        rows = (
            await self.session.execute(
                select(State.id, State.state_name, State.country_id, Country.country_name)
                .outerjoin(Country, State.country_id == Country.id)
                .order_by(State.state_name, State.id)
            )
        ).all()
        return [StateOut.model_validate(dict(row._mapping)) for row in rows]

    async def find_state_id(self, name: str, country_id: int) -> Optional[int]:
        return await self.session.scalar(
            select(State.id).where(State.state_name == name, State.country_id == country_id)
        )

    async def insert_state(self, name: str, country_id: int) -> bool:
        return await insert_ignoring_duplicates(
            self.session,
            State,
            {"state_name": name, "country_id": country_id},
            ["state_name", "country_id"],
        )

    async def find_city_id(self, name: str, state_id: Optional[int]) -> Optional[int]:
        # ``== None`` renders as IS NULL for cities of countries without states.
        return await self.session.scalar(
            select(City.id)
            .where(City.city_name == name, City.state_id == state_id)
            .order_by(City.id)
            .limit(1)
        )

    async def insert_city(self, name: str, state_id: Optional[int]) -> bool:
        return await insert_ignoring_duplicates(
            self.session,
            City,
            {"city_name": name, "state_id": state_id},
            ["city_name", "state_id"],
        )

    async def city_exists(self, city_id: int) -> bool:
        return await self.session.scalar(select(City.id).where(City.id == city_id)) is not None

    async def update_city(self, city_id: int, values: dict[str, Any]) -> bool:
        if not values:
            return await self.city_exists(city_id)
        result = await self.session.execute(
            update(City).where(City.id == city_id).values(**values)
        )
        return result.rowcount > 0

    async def list_cities(
        self,
        *,
        city: Optional[str],
        state: Optional[str],
        country: Optional[str],
        offset: int,
        limit: int,
    ) -> tuple[list[CityStatsOut], int]:
        artist_count = (
            select(func.count(Artist.id))
            .where(Artist.city_id == City.id)
            .correlate(City)
            .scalar_subquery()
        )
        conds = []
        if city:
            conds.append(City.city_name.icontains(city, autoescape=True))
        if state:
            conds.append(State.state_name == state)
        if country:
            conds.append(Country.country_name == country)

        base = (
            select(
                City.id,
                City.city_name,
                State.state_name,
                Country.country_name,
                artist_count.label("artist_count"),
            )
            .select_from(City)
            .outerjoin(State, City.state_id == State.id)
            .outerjoin(Country, State.country_id == Country.id)
        )
        count_stmt = (
            select(func.count(City.id))
            .select_from(City)
            .outerjoin(State, City.state_id == State.id)
            .outerjoin(Country, State.country_id == Country.id)
        )
        if conds:
            base = base.where(*conds)
            count_stmt = count_stmt.where(*conds)
        total = (await self.session.execute(count_stmt)).scalar_one()
        rows = (
            await self.session.execute(
                base.order_by(City.city_name, City.id).offset(offset).limit(limit)
            )
        ).all()
        return [CityStatsOut.model_validate(dict(row._mapping)) for row in rows], total

    async def attach_artists(self, cities: Sequence[CityStatsOut]) -> list[CityWithArtistsOut]:
        """Load the artists of each listed city in one query."""

        ids = [c.id for c in cities]
        grouped: dict[int, list[ArtistSummary]] = {city_id: [] for city_id in ids}
        if ids:
            rows = (
                await self.session.execute(
                    select(Artist.id, Artist.name, Artist.slug, Artist.instagram_handle, Artist.city_id)
                    .where(Artist.city_id.in_(ids))
                    .order_by(Artist.name, Artist.id)
                )
            ).all()
            by_id = {c.id: c for c in cities}
            for row in rows:
                city_row = by_id[row.city_id]
                grouped[row.city_id].append(
                    ArtistSummary(
                        id=row.id,
                        name=row.name,
                        slug=row.slug,
                        instagram_handle=row.instagram_handle,
                        city_name=city_row.city_name,
                        state_name=city_row.state_name,
                        country_name=city_row.country_name,
                    )
                )
        return [
            CityWithArtistsOut(**c.model_dump(), artists=grouped[c.id]) for c in cities
        ]
