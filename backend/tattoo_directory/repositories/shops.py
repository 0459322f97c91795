from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.models import ArtistShop, City, Country, State, TattooShop
from tattoo_directory.schemas.shop import ShopOut

_SHOP_COLUMNS = (
    TattooShop.id,
    TattooShop.shop_name,
    TattooShop.slug,
    TattooShop.instagram_handle,
    TattooShop.address,
    TattooShop.contact,
    TattooShop.phone_number,
    TattooShop.website_url,
    TattooShop.city_id,
    City.city_name,
    State.state_name,
    Country.country_name,
)


def _with_location(stmt):
    return (
        stmt.select_from(TattooShop)
        .outerjoin(City, TattooShop.city_id == City.id)
        .outerjoin(State, City.state_id == State.id)
        .outerjoin(Country, State.country_id == Country.id)
    )


class ShopRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, values: dict[str, Any]) -> int:
        shop = TattooShop(**values)
        self.session.add(shop)
        await self.session.flush()
        return shop.id

    async def update(self, shop_id: int, values: dict[str, Any]) -> bool:
        if not values:
            return await self.exists(shop_id)
        result = await self.session.execute(
            update(TattooShop).where(TattooShop.id == shop_id).values(**values)
        )
        return result.rowcount > 0

    async def exists(self, shop_id: int) -> bool:
        found = await self.session.scalar(select(TattooShop.id).where(TattooShop.id == shop_id))
        return found is not None

    async def find(self, shop_id: int) -> Optional[ShopOut]:
        row = (
            await self.session.execute(
                _with_location(select(*_SHOP_COLUMNS)).where(TattooShop.id == shop_id)
            )
        ).first()
        return ShopOut.model_validate(dict(row._mapping)) if row else None

    async def find_by_slug(self, slug: str) -> Optional[ShopOut]:
        row = (
            await self.session.execute(
                _with_location(select(*_SHOP_COLUMNS)).where(TattooShop.slug == slug)
            )
        ).first()
        return ShopOut.model_validate(dict(row._mapping)) if row else None

    async def get_slug(self, shop_id: int) -> Optional[str]:
        return await self.session.scalar(select(TattooShop.slug).where(TattooShop.id == shop_id))

    async def slug_holder(self, slug: str, *, exclude_id: int) -> Optional[int]:
        return await self.session.scalar(
            select(TattooShop.id)
            .where(TattooShop.slug == slug, TattooShop.id != exclude_id)
            .limit(1)
        )

    async def set_slug(self, shop_id: int, slug: str) -> None:
        await self.session.execute(
            update(TattooShop).where(TattooShop.id == shop_id).values(slug=slug)
        )

    async def linked_artist_ids(self, shop_id: int) -> list[int]:
        rows = await self.session.scalars(
            select(ArtistShop.artist_id)
            .where(ArtistShop.shop_id == shop_id)
            .order_by(ArtistShop.artist_id)
        )
        return list(rows)

    async def ids_without_slug(self, limit: int) -> list[int]:
        rows = await self.session.scalars(
            select(TattooShop.id)
            .where(TattooShop.slug.is_(None))
            .order_by(TattooShop.id)
            .limit(limit)
        )
        return list(rows)

    async def get_name(self, shop_id: int) -> Optional[str]:
        return await self.session.scalar(
            select(TattooShop.shop_name).where(TattooShop.id == shop_id)
        )

    async def list_page(
        self, query: Optional[str], offset: int, limit: int
    ) -> tuple[list[ShopOut], int]:
        conds = []
        if query:
            conds.append(TattooShop.shop_name.icontains(query, autoescape=True))
        count_stmt = select(func.count(TattooShop.id))
        stmt = _with_location(select(*_SHOP_COLUMNS))
        if conds:
            count_stmt = count_stmt.where(*conds)
            stmt = stmt.where(*conds)
        total = (await self.session.execute(count_stmt)).scalar_one()
        rows = (
            await self.session.execute(
                stmt.order_by(TattooShop.shop_name, TattooShop.id)
                .offset(offset)
                .limit(limit)
            )
        ).all()
        return [ShopOut.model_validate(dict(row._mapping)) for row in rows], total
