"""Script to clear cached directory read views."""

import argparse
import asyncio
import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from tattoo_directory.core.cache import CacheGateway, CacheKeys, create_redis_client
from tattoo_directory.core.config import settings

NAMESPACES = {
    "search": CacheKeys.SEARCH_PREFIX,
    "artist": CacheKeys.ARTIST_PREFIX,
    "cities": CacheKeys.CITIES_PREFIX,
    "shops": CacheKeys.SHOPS_PREFIX,
    "shop": CacheKeys.SHOP_PREFIX,
}


async def clear_cache(names: list[str]):
    """Clear every cache entry in the selected namespaces."""
    cache = CacheGateway.from_settings(create_redis_client(settings), settings)
    if not await cache.ping():
        print("Cache is disabled or unreachable; nothing to clear.")
        return
    try:
        for name in names:
            count = await cache.invalidate_pattern(NAMESPACES[name])
            print(f"Cleared {count} '{name}' cache entries")
    finally:
        await cache.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "namespaces",
        nargs="*",
        choices=sorted(NAMESPACES),
        help="namespaces to clear (default: all)",
    )
    args = parser.parse_args()
    asyncio.run(clear_cache(args.namespaces or sorted(NAMESPACES)))
