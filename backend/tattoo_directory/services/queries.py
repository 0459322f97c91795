"""Cached read paths for the public directory endpoints.

Each method names its cache key and TTL and hands a loader to
``CacheGateway.read_through``. Loaders return plain JSON-ready dicts so the
cached snapshot and a fresh response are byte-for-byte the same shape.
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.cache import CacheGateway, CacheKeys, CacheTTL
from tattoo_directory.core.db_errors import external_error
from tattoo_directory.core.errors import NotFoundError, ValidationError
from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.locations import LocationRepository
from tattoo_directory.repositories.shops import ShopRepository


# A trailing "-{id}" on a shop slug, used as a fallback when the slug misses.
_SLUG_ID_SUFFIX = re.compile(r"-(\d+)$")


def _page_envelope(results: list[dict[str, Any]], total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "results": results,
        "count": len(results),
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def _check_paging(page: int, limit: int, max_limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be 1 or greater", field="page")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}", field="limit")


class ReadThroughQueryService:
    def __init__(
        self,
        session: AsyncSession,
        cache: CacheGateway,
        ttl: CacheTTL,
        *,
        search_limit: int = 50,
        max_page_size: int = 200,
    ):
        self.session = session
        self.cache = cache
        self.ttl = ttl
        self.search_limit = search_limit
        self.max_page_size = max_page_size

    async def get_artist(self, artist_id: int) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            try:
                artist = await ArtistRepository(self.session).find(artist_id)
            except SQLAlchemyError as exc:
                raise external_error(exc, "load artist") from exc
            if artist is None:
                raise NotFoundError("Artist not found")
            return artist.model_dump(mode="json")

        return await self.cache.read_through(CacheKeys.artist(artist_id), self.ttl.artist, load)

    async def search_artists(self, query: str) -> dict[str, Any]:
        term = (query or "").strip()
        if not term:
            raise ValidationError("Query parameter is required", field="query")

        async def load() -> dict[str, Any]:
            try:
                rows = await ArtistRepository(self.session).search(term, self.search_limit)
            except SQLAlchemyError as exc:
                raise external_error(exc, "search artists") from exc
            results = [row.model_dump(mode="json") for row in rows]
            return {"results": results, "count": len(results), "query": term}

        return await self.cache.read_through(CacheKeys.search(term), self.ttl.search, load)

    async def list_cities(
        self,
        *,
        city: Optional[str] = None,
        state: Optional[str] = None,
        country: Optional[str] = None,
        include_artists: bool = False,
        page: int = 1,
        limit: int = 50,
    ) -> dict[str, Any]:
        _check_paging(page, limit, self.max_page_size)
        key = CacheKeys.cities(
            include_artists=include_artists,
            city=city,
            state=state,
            country=country,
            page=page,
            limit=limit,
        )

        async def load() -> dict[str, Any]:
            repo = LocationRepository(self.session)
            try:
                cities, total = await repo.list_cities(
                    city=(city or "").strip() or None,
                    state=(state or "").strip() or None,
                    country=(country or "").strip() or None,
                    offset=(page - 1) * limit,
                    limit=limit,
                )
                if include_artists:
                    cities = await repo.attach_artists(cities)
            except SQLAlchemyError as exc:
                raise external_error(exc, "list cities") from exc
            return _page_envelope([c.model_dump(mode="json") for c in cities], total, page, limit)

        return await self.cache.read_through(key, self.ttl.cities, load)

    async def list_shops(
        self, query: Optional[str] = None, page: int = 1, limit: int = 50
    ) -> dict[str, Any]:
        _check_paging(page, limit, self.max_page_size)
        term = (query or "").strip() or None

        async def load() -> dict[str, Any]:
            try:
                shops, total = await ShopRepository(self.session).list_page(
                    term, (page - 1) * limit, limit
                )
            except SQLAlchemyError as exc:
                raise external_error(exc, "list shops") from exc
            envelope = _page_envelope([s.model_dump(mode="json") for s in shops], total, page, limit)
            envelope["query"] = term
            return envelope

        return await self.cache.read_through(
            CacheKeys.shops(term, page, limit), self.ttl.shops, load
        )

    async def get_shop(self, shop_id: int) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            try:
                shop = await ShopRepository(self.session).find(shop_id)
            except SQLAlchemyError as exc:
                raise external_error(exc, "load shop") from exc
            if shop is None:
                raise NotFoundError("Shop not found")
            return shop.model_dump(mode="json")

        return await self.cache.read_through(CacheKeys.shop(shop_id), self.ttl.shop, load)

    async def get_shop_by_ref(self, ref: str) -> dict[str, Any]:
        """Look a shop up by numeric id or by slug.

        A slug that matches no shop but ends in ``-{id}`` falls back to that
        id, so links built before a shop was re-slugged keep working.
        """

        ref = (ref or "").strip()
        if not ref:
            raise ValidationError("Shop identifier is required", field="shop_id")
        if ref.isdigit():
            return await self.get_shop(int(ref))

        async def load() -> dict[str, Any]:
            repo = ShopRepository(self.session)
            try:
                shop = await repo.find_by_slug(ref)
                if shop is None:
                    suffix = _SLUG_ID_SUFFIX.search(ref)
                    if suffix:
                        shop = await repo.find(int(suffix.group(1)))
            except SQLAlchemyError as exc:
                raise external_error(exc, "load shop") from exc
            if shop is None:
                raise NotFoundError("Shop not found")
            return shop.model_dump(mode="json")

        return await self.cache.read_through(CacheKeys.shop_slug(ref), self.ttl.shop, load)

    async def list_artists(self, page: int = 1, limit: int = 50) -> dict[str, Any]:
        """Administrative listing; not cached because it backs editing screens."""

        _check_paging(page, limit, self.max_page_size)
        try:
            artists, total = await ArtistRepository(self.session).list_page(
                (page - 1) * limit, limit
            )
        except SQLAlchemyError as exc:
            raise external_error(exc, "list artists") from exc
        return _page_envelope([a.model_dump(mode="json") for a in artists], total, page, limit)
