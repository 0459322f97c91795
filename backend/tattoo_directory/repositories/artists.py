from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.models import Artist, ArtistShop, City, Country, State, TattooShop
from tattoo_directory.repositories.base import insert_ignoring_duplicates
from tattoo_directory.schemas.artist import ArtistOut, ArtistSummary, ShopSummary


def _with_location(stmt):
    return (
        stmt.select_from(Artist)
        .outerjoin(City, Artist.city_id == City.id)
        .outerjoin(State, City.state_id == State.id)
        .outerjoin(Country, State.country_id == Country.id)
    )


_SUMMARY_COLUMNS = (
    Artist.id,
    Artist.name,
    Artist.slug,
    Artist.instagram_handle,
    City.city_name,
    State.state_name,
    Country.country_name,
)


class ArtistRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, values: dict[str, Any]) -> int:
        artist = Artist(**values)
        self.session.add(artist)
        await self.session.flush()
        return artist.id

    async def get_name(self, artist_id: int) -> Optional[str]:
        return await self.session.scalar(select(Artist.name).where(Artist.id == artist_id))

    async def get_slug(self, artist_id: int) -> Optional[str]:
        return await self.session.scalar(select(Artist.slug).where(Artist.id == artist_id))

    async def slug_holder(self, slug: str, *, exclude_id: int) -> Optional[int]:
        """Id of another artist already holding ``slug``, if any."""

        return await self.session.scalar(
            select(Artist.id).where(Artist.slug == slug, Artist.id != exclude_id).limit(1)
        )

    async def set_slug(self, artist_id: int, slug: str) -> None:
        await self.session.execute(
            update(Artist).where(Artist.id == artist_id).values(slug=slug)
        )

    async def update(self, artist_id: int, values: dict[str, Any]) -> bool:
        if not values:
            return await self.exists(artist_id)
        result = await self.session.execute(
            update(Artist).where(Artist.id == artist_id).values(**values)
        )
        return result.rowcount > 0

    async def exists(self, artist_id: int) -> bool:
        return await self.session.scalar(select(Artist.id).where(Artist.id == artist_id)) is not None

    async def link_shop(self, artist_id: int, shop_id: int) -> bool:
        return await insert_ignoring_duplicates(
            self.session,
            ArtistShop,
            {"artist_id": artist_id, "shop_id": shop_id},
            ["artist_id", "shop_id"],
        )

    async def link_exists(self, artist_id: int, shop_id: int) -> bool:
        found = await self.session.scalar(
            select(ArtistShop.artist_id).where(
                ArtistShop.artist_id == artist_id, ArtistShop.shop_id == shop_id
            )
        )
        return found is not None

    async def clear_shop_links(self, artist_id: int) -> None:
        await self.session.execute(delete(ArtistShop).where(ArtistShop.artist_id == artist_id))

    async def find(self, artist_id: int) -> Optional[ArtistOut]:
        row = (
            await self.session.execute(
                _with_location(
                    select(
                        *_SUMMARY_COLUMNS,
                        Artist.gender,
                        Artist.url,
                        Artist.contact,
                        Artist.is_traveling,
                        Artist.city_id,
                    )
                ).where(Artist.id == artist_id)
            )
        ).first()
        if row is None:
            return None
        shop = (
            await self.session.execute(
                select(TattooShop.id, TattooShop.shop_name, TattooShop.instagram_handle)
                .join(ArtistShop, ArtistShop.shop_id == TattooShop.id)
                .where(ArtistShop.artist_id == artist_id)
                .order_by(TattooShop.id)
                .limit(1)
            )
        ).first()
        data = dict(row._mapping)
        data["is_traveling"] = bool(data["is_traveling"])
        data["shop"] = ShopSummary.model_validate(dict(shop._mapping)) if shop else None
        return ArtistOut.model_validate(data)

    async def search(self, term: str, limit: int) -> list[ArtistSummary]:
        """Case-insensitive substring match over name, handle and location names."""

        stmt = (
            _with_location(select(*_SUMMARY_COLUMNS))
            .where(
                or_(
                    Artist.name.icontains(term, autoescape=True),
                    Artist.instagram_handle.icontains(term, autoescape=True),
                    City.city_name.icontains(term, autoescape=True),
                    State.state_name.icontains(term, autoescape=True),
                    Country.country_name.icontains(term, autoescape=True),
                )
            )
            .order_by(Artist.name, Artist.id)
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).all()
        return [ArtistSummary.model_validate(dict(row._mapping)) for row in rows]

    async def list_page(self, offset: int, limit: int) -> tuple[list[ArtistSummary], int]:
        total = (await self.session.execute(select(func.count(Artist.id)))).scalar_one()
        rows = (
            await self.session.execute(
                _with_location(select(*_SUMMARY_COLUMNS))
                .order_by(Artist.name, Artist.id)
                .offset(offset)
                .limit(limit)
            )
        ).all()
        return [ArtistSummary.model_validate(dict(row._mapping)) for row in rows], total

    async def ids_without_slug(self, limit: int) -> list[int]:
        rows = await self.session.scalars(
            select(Artist.id).where(Artist.slug.is_(None)).order_by(Artist.id).limit(limit)
        )
        return list(rows)
