from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.cache import (
    CacheGateway,
    invalidate_artist_views,
    invalidate_shop_views,
)
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.db_errors import external_error
from tattoo_directory.core.errors import DirectoryError, NotFoundError, ValidationError
from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.locations import LocationRepository
from tattoo_directory.repositories.shops import ShopRepository
from tattoo_directory.schemas.shop import ArtistShopLinkCreate, ShopCreate, ShopUpdate
from tattoo_directory.services.artist_ingest import normalize_handle
from tattoo_directory.services.slugs import SlugAssigner, slugify


@dataclass(slots=True)
class ShopWriteResult:
    shop_id: int
    slug: Optional[str] = None
    slug_error: Optional[str] = None


class ShopService:
    """Shop writes and explicit artist-shop links, with cache eviction.

    Like artists, a shop row commits before its slug is assigned; a failed
    slug step leaves the shop reachable by id and is repaired by
    ``assign_slug``.
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
        self.shops = ShopRepository(session)

    async def create_shop(self, payload: ShopCreate) -> ShopWriteResult:
        if not (payload.shop_name or "").strip():
            raise ValidationError("Missing required field: shop_name", field="shop_name")
        if payload.city_id is None:
            raise ValidationError("Missing required field: city_id", field="city_id")

        values: dict[str, Any] = {
            key: value for key, value in payload.model_dump().items() if value not in (None, "")
        }
        values["shop_name"] = payload.shop_name.strip()
        if "instagram_handle" in values:
            values["instagram_handle"] = normalize_handle(values["instagram_handle"])

        try:
            with datastore_deadline(self.step_timeout):
                await self._ensure_city(payload.city_id)
                shop_id = await self.shops.insert(values)
                await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "create shop") from exc

        logger.bind(shop_id=shop_id).info("shop_created")
        result = await self._assign_slug(ShopWriteResult(shop_id), values["shop_name"])
        await invalidate_shop_views(self.cache)
        return result

    async def assign_slug(self, shop_id: int) -> ShopWriteResult:
        """Give an existing shop its slug if it has none yet; idempotent."""

        try:
            with datastore_deadline(self.step_timeout):
                name = await self.shops.get_name(shop_id)
                slug = await self.shops.get_slug(shop_id)
        except SQLAlchemyError as exc:
            raise external_error(exc, "load shop") from exc
        if name is None:
            raise NotFoundError("Shop not found")

        result = ShopWriteResult(shop_id, slug=slug)
        if slug is None:
            await self._assign_slug(result, name)
            await invalidate_shop_views(self.cache, shop_id)
        return result

    async def update_shop(self, shop_id: int, payload: ShopUpdate) -> None:
        changes = payload.model_dump(exclude_unset=True)
        if "shop_name" in changes and not (changes["shop_name"] or "").strip():
            raise ValidationError("shop_name cannot be empty", field="shop_name")
        if "city_id" in changes and changes["city_id"] is None:
            raise ValidationError("city_id cannot be empty", field="city_id")
        if "instagram_handle" in changes:
            changes["instagram_handle"] = normalize_handle(changes["instagram_handle"])

        try:
            with datastore_deadline(self.step_timeout):
                if "city_id" in changes:
                    await self._ensure_city(changes["city_id"])
                found = await self.shops.update(shop_id, changes)
                if found:
                    await self.session.commit()
                    artist_ids = await self.shops.linked_artist_ids(shop_id)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "update shop") from exc
        if not found:
            raise NotFoundError("Shop not found")

        await invalidate_shop_views(self.cache, shop_id, artist_ids=artist_ids)

    async def link_artist(self, payload: ArtistShopLinkCreate) -> None:
        if payload.artist_id is None or payload.shop_id is None:
            raise ValidationError("Missing required fields: artist_id, shop_id")

        artists = ArtistRepository(self.session)
        try:
            with datastore_deadline(self.step_timeout):
                if not await artists.exists(payload.artist_id):
                    raise NotFoundError("Artist not found")
                if not await self.shops.exists(payload.shop_id):
                    raise NotFoundError("Shop not found")
                created = await artists.link_shop(payload.artist_id, payload.shop_id)
                await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise external_error(exc, "add artist-shop link") from exc
        if not created:
            raise ValidationError("This artist-shop link already exists")

        await invalidate_artist_views(self.cache, payload.artist_id)

    async def _assign_slug(self, result: ShopWriteResult, name: str) -> ShopWriteResult:
        assigner = SlugAssigner(self.session, self.shops, prefix="shop")
        try:
            with datastore_deadline(self.step_timeout):
                result.slug = await assigner.assign(result.shop_id, slugify(name))
        except (SQLAlchemyError, DirectoryError) as exc:
            await self.session.rollback()
            result.slug_error = str(getattr(exc, "orig", None) or exc)
            logger.bind(shop_id=result.shop_id, error=result.slug_error).warning(
                "shop_slug_degraded"
            )
        return result

    async def _ensure_city(self, city_id: int) -> None:
        if not await LocationRepository(self.session).city_exists(city_id):
            raise ValidationError(f"Unknown city_id: {city_id}", field="city_id")
