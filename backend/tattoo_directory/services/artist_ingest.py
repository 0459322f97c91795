"""Artist submission and maintenance.

Creating an artist is deliberately not one transaction. The artist row (and
any new location rows) commit first; slug assignment and the shop link are
separate follow-up steps. When a follow-up step fails the artist still
exists, the failure is logged and returned as a ``DegradedStep``, and
``reconcile`` can rerun the step later with the same outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.cache import CacheGateway, invalidate_artist_views
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.db_errors import external_error
from tattoo_directory.core.db_retry import with_db_retry
from tattoo_directory.core.errors import DirectoryError, NotFoundError, ValidationError
from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.locations import LocationRepository
from tattoo_directory.repositories.shops import ShopRepository
from tattoo_directory.schemas.artist import ArtistCreate, ArtistUpdate
from tattoo_directory.services.location_resolver import LocationResolver
from tattoo_directory.services.slugs import SlugAssigner, slugify

STEP_SLUG = "slug"
STEP_SHOP_LINK = "shop_link"


@dataclass(slots=True)
class DegradedStep:
    """A secondary step that failed after the artist row was committed."""

    step: str
    error: str


@dataclass(slots=True)
class IngestResult:
    artist_id: int
    slug: Optional[str] = None
    degraded: list[DegradedStep] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.degraded


def normalize_handle(handle: Optional[str]) -> Optional[str]:
    if handle is None:
        return None
    cleaned = handle.strip().removeprefix("@")
    return cleaned or None


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


class ArtistIngestService:
    """Artist writes.

    ``step_timeout`` bounds the primary write and each follow-up step on its
    own: a primary timeout fails the call, a follow-up timeout is reported as
    a degraded step of an artist that already exists.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheGateway,
        *,
        step_timeout: Optional[float] = None,
    ):
        self.session = session
        self.cache = cache
        self.step_timeout = step_timeout
        self.artists = ArtistRepository(session)

    async def create_artist(self, payload: ArtistCreate) -> IngestResult:
        if _blank(payload.name):
            raise ValidationError("Missing required field: name", field="name")
        name = payload.name.strip()

        has_triple = not any(
            _blank(v) for v in (payload.city_name, payload.state_name, payload.country_name)
        )
        if payload.city_id is None and not has_triple:
            raise ValidationError(
                "Either city_id or (city_name, state_name, country_name) must be provided",
                field="city_id",
            )
        if payload.city_id is not None:
            await self._ensure_city(payload.city_id)

        candidate = slugify(name)

        async def create_primary() -> int:
            city_id = payload.city_id
            if city_id is None:
                city_id = await LocationResolver(self.session).resolve(
                    payload.country_name, payload.state_name, payload.city_name
                )
            artist_id = await self.artists.insert(self._artist_values(payload, name, city_id))
            await self.session.commit()
            return artist_id

        try:
            with datastore_deadline(self.step_timeout):
                artist_id = await with_db_retry(self.session, create_primary)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "create artist") from exc

        logger.bind(artist_id=artist_id, candidate=candidate).info("artist_created")
        result = IngestResult(artist_id=artist_id)
        await self._assign_slug(result, candidate)
        if payload.shop_id is not None:
            await self._link_shop(result, payload.shop_id)
        await invalidate_artist_views(self.cache, artist_id)
        return result

    async def reconcile(self, artist_id: int, shop_id: Optional[int] = None) -> IngestResult:
        """Rerun the slug and (optionally) shop-link steps for an existing artist."""

        try:
            with datastore_deadline(self.step_timeout):
                name = await self.artists.get_name(artist_id)
                current_slug = await self.artists.get_slug(artist_id)
        except SQLAlchemyError as exc:
            raise external_error(exc, "load artist") from exc
        if name is None:
            raise NotFoundError("Artist not found")

        result = IngestResult(artist_id=artist_id, slug=current_slug)
        if current_slug is None:
            await self._assign_slug(result, slugify(name))
        if shop_id is not None:
            await self._link_shop(result, shop_id)
        await invalidate_artist_views(self.cache, artist_id)
        return result

    async def update_artist(self, artist_id: int, payload: ArtistUpdate) -> IngestResult:
        changes = payload.model_dump(exclude_unset=True)
        replace_shop = "shop_id" in changes
        shop_id = changes.pop("shop_id", None)

        if "name" in changes:
            if _blank(changes["name"]):
                raise ValidationError("name cannot be empty", field="name")
            changes["name"] = changes["name"].strip()
        if "instagram_handle" in changes:
            changes["instagram_handle"] = normalize_handle(changes["instagram_handle"])
        for key in ("gender", "url", "contact"):
            if key in changes:
                changes[key] = changes[key] or None
        if "is_traveling" in changes:
            changes["is_traveling"] = bool(changes["is_traveling"])
        if changes.get("city_id") is not None:
            await self._ensure_city(changes["city_id"])

        slug = None
        try:
            with datastore_deadline(self.step_timeout):
                found = await self.artists.update(artist_id, changes)
                if found:
                    await self.session.commit()
                    slug = await self.artists.get_slug(artist_id)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "update artist") from exc
        if not found:
            raise NotFoundError("Artist not found")

        result = IngestResult(artist_id=artist_id, slug=slug)
        if replace_shop:
            await self._replace_shop(result, shop_id)
        await invalidate_artist_views(self.cache, artist_id)
        return result

    def _artist_values(
        self, payload: ArtistCreate, name: str, city_id: Optional[int]
    ) -> dict[str, Any]:
        values: dict[str, Any] = {"name": name, "city_id": city_id}
        handle = normalize_handle(payload.instagram_handle)
        if handle:
            values["instagram_handle"] = handle
        for key in ("gender", "url", "contact"):
            value = getattr(payload, key)
            if value:
                values[key] = value
        if payload.is_traveling is not None:
            values["is_traveling"] = payload.is_traveling
        return values

    async def _ensure_city(self, city_id: int) -> None:
        try:
            exists = await LocationRepository(self.session).city_exists(city_id)
        except SQLAlchemyError as exc:
            raise external_error(exc, "look up city") from exc
        if not exists:
            raise ValidationError(f"Unknown city_id: {city_id}", field="city_id")

    async def _assign_slug(self, result: IngestResult, candidate: str) -> None:
        try:
            with datastore_deadline(self.step_timeout):
                result.slug = await SlugAssigner(self.session).assign(
                    result.artist_id, candidate
                )
        except (SQLAlchemyError, DirectoryError) as exc:
            await self.session.rollback()
            self._degrade(result, STEP_SLUG, exc)

    async def _link_shop(self, result: IngestResult, shop_id: int) -> None:
        try:
            with datastore_deadline(self.step_timeout):
                if not await ShopRepository(self.session).exists(shop_id):
                    raise NotFoundError(f"Shop {shop_id} not found")
                await self.artists.link_shop(result.artist_id, shop_id)
                await self.session.commit()
        except (SQLAlchemyError, DirectoryError) as exc:
            await self.session.rollback()
            self._degrade(result, STEP_SHOP_LINK, exc)

    async def _replace_shop(self, result: IngestResult, shop_id: Optional[int]) -> None:
        try:
            with datastore_deadline(self.step_timeout):
                await self.artists.clear_shop_links(result.artist_id)
                await self.session.commit()
        except (SQLAlchemyError, DirectoryError) as exc:
            await self.session.rollback()
            self._degrade(result, STEP_SHOP_LINK, exc)
            return
        if shop_id:
            await self._link_shop(result, shop_id)

    @staticmethod
    def _degrade(result: IngestResult, step: str, exc: Exception) -> None:
        message = str(getattr(exc, "orig", None) or exc)
        logger.bind(artist_id=result.artist_id, step=step, error=message).warning(
            f"{step}_degraded"
        )
        result.degraded.append(DegradedStep(step=step, error=message))
