"""Cascading get-or-create for country -> state -> city."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from loguru import logger
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.db_errors import external_error
from tattoo_directory.core.db_retry import is_retriable
from tattoo_directory.core.errors import ResolutionConflict, ValidationError
from tattoo_directory.repositories.locations import LocationRepository

# Re-selects after a conflict-free insert: the first read plus one retry.
RESELECT_ATTEMPTS = 2


def _require_name(value: Optional[str], field: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"Missing required field: {field}", field=field)
    return name


class LocationResolver:
    """Resolve a location triple to a city id, creating missing levels.

    Each level is looked up by its exact (case-sensitive) natural key. A
    missing row is created with an atomic insert that ignores duplicates and
    then re-read, so concurrent submissions of the same new city converge on
    one row. Nothing is committed here; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.repo = LocationRepository(session)

    async def resolve(self, country_name: str, state_name: str, city_name: str) -> int:
        country = _require_name(country_name, "country_name")
        state = _require_name(state_name, "state_name")
        city = _require_name(city_name, "city_name")

        country_id = await self.get_or_create_country(country)
        state_id = await self.get_or_create_state(state, country_id)
        return await self.get_or_create_city(city, state_id)

    async def get_or_create_country(self, name: str, code: str = "") -> int:
        name = _require_name(name, "country_name")
        return await self._get_or_create(
            "country",
            name,
            lambda: self.repo.find_country_id(name),
            lambda: self.repo.insert_country(name, code),
        )

    async def get_or_create_state(self, name: str, country_id: int) -> int:
        name = _require_name(name, "state_name")
        if country_id is None:
            raise ValidationError("A state requires a resolved country", field="country_name")
        return await self._get_or_create(
            "state",
            name,
            lambda: self.repo.find_state_id(name, country_id),
            lambda: self.repo.insert_state(name, country_id),
        )

    async def get_or_create_city(self, name: str, state_id: Optional[int]) -> int:
        name = _require_name(name, "city_name")
        return await self._get_or_create(
            "city",
            name,
            lambda: self.repo.find_city_id(name, state_id),
            lambda: self.repo.insert_city(name, state_id),
        )

    async def _get_or_create(
        self,
        level: str,
        name: str,
        find: Callable[[], Awaitable[Optional[int]]],
        insert: Callable[[], Awaitable[bool]],
    ) -> int:
        try:
            existing = await find()
            if existing is not None:
                return existing

            created = await insert()
            for _ in range(RESELECT_ATTEMPTS):
                row_id = await find()
                if row_id is not None:
                    if created:
                        logger.bind(level=level, name=name, id=row_id).info("location_created")
                    return row_id
        except SQLAlchemyError as exc:
            if isinstance(exc, DBAPIError) and is_retriable(exc):
                raise
            raise external_error(exc, f"resolve {level} '{name}'") from exc

        raise ResolutionConflict(
            f"Could not resolve {level} '{name}'",
            details="row was neither found nor created",
        )
