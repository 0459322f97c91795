"""Assign slugs to artists and shops whose slug step degraded or never ran.

Safe to run repeatedly: rows that already hold a slug are never touched.
"""

import argparse
import asyncio
import pathlib
import sys
from typing import Awaitable, Callable, Optional

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.cache import CacheGateway, create_redis_client
from tattoo_directory.core.config import settings
from tattoo_directory.core.db import build_engine, build_session_factory
from tattoo_directory.core.logging import setup_logging
from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.shops import ShopRepository
from tattoo_directory.services.artist_ingest import ArtistIngestService
from tattoo_directory.services.shops import ShopService

Pending = Callable[[AsyncSession, int], Awaitable[list[int]]]
Repair = Callable[[AsyncSession, CacheGateway, int], Awaitable[Optional[str]]]


async def _pending_artists(session: AsyncSession, limit: int) -> list[int]:
    return await ArtistRepository(session).ids_without_slug(limit)


async def _repair_artist(
    session: AsyncSession, cache: CacheGateway, artist_id: int
) -> Optional[str]:
    return (await ArtistIngestService(session, cache).reconcile(artist_id)).slug


async def _pending_shops(session: AsyncSession, limit: int) -> list[int]:
    return await ShopRepository(session).ids_without_slug(limit)


async def _repair_shop(session: AsyncSession, cache: CacheGateway, shop_id: int) -> Optional[str]:
    return (await ShopService(session, cache).assign_slug(shop_id)).slug


RESOURCES: dict[str, tuple[Pending, Repair]] = {
    "artists": (_pending_artists, _repair_artist),
    "shops": (_pending_shops, _repair_shop),
}


async def sweep(session_factory, cache: CacheGateway, resource: str, batch_size: int) -> int:
    pending_ids, repair = RESOURCES[resource]
    repaired = 0
    skipped: set[int] = set()
    while True:
        async with session_factory() as session:
            pending = [
                row_id
                for row_id in await pending_ids(session, batch_size + len(skipped))
                if row_id not in skipped
            ]
            if not pending:
                break
            for row_id in pending:
                slug = await repair(session, cache, row_id)
                if slug is None:
                    skipped.add(row_id)
                else:
                    repaired += 1
                    logger.bind(resource=resource, id=row_id, slug=slug).info("slug_reconciled")
    if skipped:
        logger.bind(resource=resource, ids=sorted(skipped)).warning("slug_reconcile_incomplete")
    return repaired


async def reconcile(resources: list[str], batch_size: int) -> dict[str, int]:
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    cache = CacheGateway.from_settings(create_redis_client(settings), settings)
    try:
        return {
            resource: await sweep(session_factory, cache, resource, batch_size)
            for resource in resources
        }
    finally:
        await cache.close()
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "resources",
        nargs="*",
        choices=sorted(RESOURCES),
        help="Which tables to sweep (default: all)",
    )
    parser.add_argument("--batch-size", type=int, default=200)
    args = parser.parse_args()
    setup_logging()
    counts = asyncio.run(reconcile(args.resources or sorted(RESOURCES), args.batch_size))
    for resource, count in counts.items():
        print(f"Reconciled {count} {resource[:-1]} slugs")
