"""Redis-backed read-through cache with resource-scoped keys and TTLs.

The cache only ever holds disposable JSON snapshots of datastore rows, so
every failure on this path is absorbed: reads degrade to a miss and writes or
evictions become no-ops. Callers never see a cache error.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from tattoo_directory.core.config import Settings

# Errors that mean "the cache is unavailable or holds garbage", never fatal.
CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError, ValueError, TypeError)

_NON_ALNUM = re.compile(r"[^a-z0-9]")

Loader = Callable[[], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class CacheTTL:
    """Per-resource time-to-live policy, in seconds."""

    search: int = 900
    artist: int = 3600
    cities: int = 1800
    shops: int = 1800
    shop: int = 1800

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheTTL":
        return cls(
            search=settings.CACHE_TTL_SEARCH,
            artist=settings.CACHE_TTL_ARTIST,
            cities=settings.CACHE_TTL_CITIES,
            shops=settings.CACHE_TTL_SHOPS,
            shop=settings.CACHE_TTL_SHOP,
        )


class CacheKeys:
    """Key builders; each resource owns a namespace so it can be swept alone."""

    SEARCH_PREFIX = "search:artists:"
    ARTIST_PREFIX = "artist:"
    CITIES_PREFIX = "cities:"
    SHOPS_PREFIX = "shops:"
    SHOP_PREFIX = "shop:"
    SHOP_SLUG_PREFIX = "shop:slug:"

    @staticmethod
    def normalize_query(query: str) -> str:
        return _NON_ALNUM.sub("_", query.strip().lower())

    @classmethod
    def search(cls, query: str) -> str:
        return f"{cls.SEARCH_PREFIX}{cls.normalize_query(query)}"

    @classmethod
    def artist(cls, artist_id: int | str) -> str:
        return f"{cls.ARTIST_PREFIX}{artist_id}"

    @classmethod
    def cities(
        cls,
        *,
        include_artists: bool,
        city: Optional[str],
        state: Optional[str],
        country: Optional[str],
        page: int,
        limit: int,
    ) -> str:
        mode = "with_artists" if include_artists else "stats"
        # Only the city filter is a case-insensitive match; state and country
        # are matched exactly, so their case must survive into the key.
        parts = [
            f"{name}={value}"
            for name, value in (
                ("city", (city or "").strip().lower()),
                ("state", (state or "").strip()),
                ("country", (country or "").strip()),
            )
            if value
        ]
        filters = ",".join(parts) or "all"
        return f"{cls.CITIES_PREFIX}{mode}:{filters}:{page}:{limit}"

    @classmethod
    def shops(cls, query: Optional[str], page: int, limit: int) -> str:
        term = query.strip().lower() if query and query.strip() else "all"
        return f"{cls.SHOPS_PREFIX}{term}:{page}:{limit}"

    @classmethod
    def shop(cls, shop_id: int | str) -> str:
        return f"{cls.SHOP_PREFIX}{shop_id}"

    @classmethod
    def shop_slug(cls, slug: str) -> str:
        return f"{cls.SHOP_SLUG_PREFIX}{slug}"


def create_redis_client(settings: Settings) -> Optional[redis.Redis]:
    """Build the Redis client from settings, or ``None`` when caching is disabled."""

    if not settings.CACHE_ENABLED:
        return None
    return redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.CACHE_CONNECT_TIMEOUT_SEC,
        socket_timeout=settings.CACHE_OP_TIMEOUT_SEC,
    )


class CacheGateway:
    """Fail-open cache wrapper shared by every read endpoint.

    ``read_through`` de-duplicates concurrent misses for the same key inside
    this process: the first caller runs the loader and later callers await the
    same task. Separate worker processes can still each run the loader once.
    """

    def __init__(
        self,
        client: Optional[redis.Redis],
        *,
        op_timeout: float = 0.25,
        scan_batch: int = 500,
    ) -> None:
        self._client = client
        self._op_timeout = op_timeout
        self._scan_batch = scan_batch
        self._inflight: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, client: Optional[redis.Redis], settings: Settings) -> "CacheGateway":
        return cls(
            client,
            op_timeout=settings.CACHE_OP_TIMEOUT_SEC,
            scan_batch=settings.CACHE_SCAN_BATCH,
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=self._op_timeout))
        except CACHE_ERRORS as exc:
            logger.bind(error=str(exc)).warning("cache_unavailable")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` on a miss or any cache failure."""

        if self._client is None:
            return None
        try:
            raw = await asyncio.wait_for(self._client.get(key), timeout=self._op_timeout)
            if raw is None:
                return None
            return json.loads(raw)
        except CACHE_ERRORS as exc:
            logger.bind(key=key, error=str(exc)).warning("cache_get_failed")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if self._client is None:
            return False
        try:
            payload = json.dumps(value)
            await asyncio.wait_for(
                self._client.setex(key, ttl_seconds, payload), timeout=self._op_timeout
            )
            return True
        except CACHE_ERRORS as exc:
            logger.bind(key=key, error=str(exc)).warning("cache_set_failed")
            return False

    async def invalidate(self, key: str) -> int:
        if self._client is None:
            return 0
        try:
            return int(await asyncio.wait_for(self._client.delete(key), timeout=self._op_timeout))
        except CACHE_ERRORS as exc:
            logger.bind(key=key, error=str(exc)).warning("cache_invalidate_failed")
            return 0

    async def invalidate_pattern(self, prefix: str) -> int:
        """Delete every key starting with ``prefix`` using SCAN, in batches."""

        if self._client is None:
            return 0
        try:
            return await asyncio.wait_for(
                self._sweep(prefix), timeout=self._op_timeout * 20
            )
        except CACHE_ERRORS as exc:
            logger.bind(prefix=prefix, error=str(exc)).warning("cache_invalidate_failed")
            return 0

    async def _sweep(self, prefix: str) -> int:
        deleted = 0
        batch: list[str] = []
        async for key in self._client.scan_iter(match=f"{prefix}*", count=self._scan_batch):
            batch.append(key)
            if len(batch) >= self._scan_batch:
                deleted += await self._client.delete(*batch)
                batch = []
        if batch:
            deleted += await self._client.delete(*batch)
        return deleted

    async def read_through(self, key: str, ttl_seconds: int, loader: Loader) -> Any:
        """Return the cached value for ``key`` or load, store and return it.

        ``loader`` runs at most once per call. Loader exceptions propagate and
        nothing is cached; a ``None`` result is returned but not cached.
        """

        cached = await self.get(key)
        if cached is not None:
            logger.bind(key=key).debug("cache_hit")
            return cached

        task = self._inflight.get(key)
        if task is None:
            logger.bind(key=key).debug("cache_miss")
            task = asyncio.ensure_future(self._load_and_store(key, ttl_seconds, loader))
            self._inflight[key] = task
            task.add_done_callback(lambda _done: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _load_and_store(self, key: str, ttl_seconds: int, loader: Loader) -> Any:
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value


async def invalidate_artist_views(cache: CacheGateway, artist_id: int) -> None:
    """Evict an artist's detail snapshot and every listing that may embed it."""

    await cache.invalidate(CacheKeys.artist(artist_id))
    await cache.invalidate_pattern(CacheKeys.SEARCH_PREFIX)
    await cache.invalidate_pattern(CacheKeys.CITIES_PREFIX)


async def invalidate_shop_views(
    cache: CacheGateway,
    shop_id: int | None = None,
    *,
    artist_ids: Iterable[int] = (),
) -> None:
    """Evict a shop's detail snapshots and listings along with its artists.

    Slug lookups may be cached under a stale or id-suffixed slug, so all of
    them are swept when a shop changes. Artist detail snapshots embed the
    shop name and handle, so every artist linked to the shop is evicted too.
    """

    if shop_id is not None:
        await cache.invalidate(CacheKeys.shop(shop_id))
        await cache.invalidate_pattern(CacheKeys.SHOP_SLUG_PREFIX)
    for artist_id in artist_ids:
        await cache.invalidate(CacheKeys.artist(artist_id))
    await cache.invalidate_pattern(CacheKeys.SHOPS_PREFIX)


async def invalidate_location_views(cache: CacheGateway) -> None:
    """Sweep every namespace whose snapshots embed country, state or city names."""

    for prefix in (
        CacheKeys.CITIES_PREFIX,
        CacheKeys.SEARCH_PREFIX,
        CacheKeys.ARTIST_PREFIX,
        CacheKeys.SHOPS_PREFIX,
        CacheKeys.SHOP_PREFIX,
    ):
        await cache.invalidate_pattern(prefix)
