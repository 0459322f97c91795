"""Administrative writes on the location taxonomy.

Adding a location is get-or-create, like the resolution done for artist
submissions: posting an existing name returns the existing row. Renames and
moves change names embedded in cached artist, shop and city snapshots, so
they sweep every location-bearing cache namespace.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.cache import CacheGateway, CacheKeys, invalidate_location_views
from tattoo_directory.core.db_errors import external_error, is_unique_violation
from tattoo_directory.core.errors import NotFoundError, ValidationError
from tattoo_directory.repositories.locations import LocationRepository
from tattoo_directory.schemas.location import (
    CityCreate,
    CityUpdate,
    CountryCreate,
    CountryUpdate,
    StateOut,
)
from tattoo_directory.services.location_resolver import LocationResolver


@dataclass(slots=True)
class LocationWrite:
    id: int
    created: bool


def _clean_code(code: Optional[str]) -> str:
    # ``country_code`` is NOT NULL; a missing code is stored as "".
    return (code or "").strip()


class LocationService:
    def __init__(self, session: AsyncSession, cache: CacheGateway):
        self.session = session
        self.cache = cache
        self.repo = LocationRepository(session)
        self.resolver = LocationResolver(session)

    async def add_country(self, payload: CountryCreate) -> LocationWrite:
        name = (payload.country_name or "").strip()
        if not name:
            raise ValidationError("Missing required field: country_name", field="country_name")

        try:
            existing = await self.repo.find_country_id(name)
            country_id = existing
            if existing is None:
                country_id = await self.resolver.get_or_create_country(
                    name, _clean_code(payload.country_code)
                )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "add country") from exc

        logger.bind(country_id=country_id, created=existing is None).info("country_added")
        return LocationWrite(country_id, created=existing is None)

    async def update_country(self, country_id: int, payload: CountryUpdate) -> None:
        changes = payload.model_dump(exclude_unset=True)
        if "country_name" in changes:
            changes["country_name"] = (changes["country_name"] or "").strip()
            if not changes["country_name"]:
                raise ValidationError("country_name cannot be empty", field="country_name")
        if "country_code" in changes:
            changes["country_code"] = _clean_code(changes["country_code"])

        await self._apply_update(
            "country", lambda: self.repo.update_country(country_id, changes)
        )
        logger.bind(country_id=country_id, fields=sorted(changes)).info("country_updated")

    async def add_city(self, payload: CityCreate) -> LocationWrite:
        name = (payload.city_name or "").strip()
        if not name:
            raise ValidationError("Missing required field: city_name", field="city_name")
        state_id = payload.state_id or None

        try:
            if state_id is not None:
                await self._ensure_state(state_id)
            existing = await self.repo.find_city_id(name, state_id)
            city_id = existing
            if existing is None:
                city_id = await self.resolver.get_or_create_city(name, state_id)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "add city") from exc

        logger.bind(city_id=city_id, state_id=state_id, created=existing is None).info(
            "city_added"
        )
        if existing is None:
            await self.cache.invalidate_pattern(CacheKeys.CITIES_PREFIX)
        return LocationWrite(city_id, created=existing is None)

    async def update_city(self, city_id: int, payload: CityUpdate) -> None:
        changes = payload.model_dump(exclude_unset=True)
        if "city_name" in changes:
            changes["city_name"] = (changes["city_name"] or "").strip()
            if not changes["city_name"]:
                raise ValidationError("city_name cannot be empty", field="city_name")
        if "state_id" in changes:
            changes["state_id"] = changes["state_id"] or None
            if changes["state_id"] is not None:
                await self._ensure_state(changes["state_id"])

        await self._apply_update("city", lambda: self.repo.update_city(city_id, changes))
        logger.bind(city_id=city_id, fields=sorted(changes)).info("city_updated")

    async def list_states(self) -> list[StateOut]:
        try:
            return await self.repo.list_states()
        except SQLAlchemyError as exc:
            raise external_error(exc, "list states") from exc

    async def _apply_update(self, level: str, write: Callable[[], Awaitable[bool]]) -> None:
        try:
            found = await write()
            if found:
                await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if is_unique_violation(exc):
                raise ValidationError(f"A {level} with that name already exists") from exc
            raise external_error(exc, f"update {level}") from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, f"update {level}") from exc
        if not found:
            raise NotFoundError(f"{level.capitalize()} not found")

        await invalidate_location_views(self.cache)

    async def _ensure_state(self, state_id: int) -> None:
        try:
            exists = await self.repo.state_exists(state_id)
        except SQLAlchemyError as exc:
            raise external_error(exc, "look up state") from exc
        if not exists:
            raise ValidationError(f"Unknown state_id: {state_id}", field="state_id")
