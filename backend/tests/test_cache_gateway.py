import asyncio

import pytest

from conftest import FakeRedis, UnreachableRedis
from tattoo_directory.core.cache import (
    CacheGateway,
    CacheKeys,
    invalidate_artist_views,
    invalidate_location_views,
    invalidate_shop_views,
)


def test_search_key_normalizes_query():
    assert CacheKeys.search("Black & Grey") == "search:artists:black___grey"
    assert CacheKeys.search("black & grey") == CacheKeys.search("BLACK & GREY")


def test_cities_key_reflects_filters_and_mode():
    assert CacheKeys.cities(
        include_artists=False, city=None, state=None, country=None, page=1, limit=50
    ) == "cities:stats:all:1:50"
    assert CacheKeys.cities(
        include_artists=True, city=" Austin", state="TX", country=None, page=2, limit=10
    ) == "cities:with_artists:city=austin,state=TX:2:10"


def test_cities_key_keeps_case_of_exact_match_filters():
    lower = CacheKeys.cities(
        include_artists=False, city=None, state="texas", country=None, page=1, limit=50
    )
    proper = CacheKeys.cities(
        include_artists=False, city=None, state=" Texas ", country="USA", page=1, limit=50
    )

    assert lower == "cities:stats:state=texas:1:50"
    assert proper == "cities:stats:state=Texas,country=USA:1:50"
    # The city filter is a case-insensitive match, so its case is folded.
    assert CacheKeys.cities(
        include_artists=False, city="AUS", state=None, country=None, page=1, limit=50
    ) == CacheKeys.cities(
        include_artists=False, city="aus", state=None, country=None, page=1, limit=50
    )


def test_shops_and_detail_keys():
    assert CacheKeys.shops(None, 1, 50) == "shops:all:1:50"
    assert CacheKeys.shops("Iron", 1, 50) == "shops:iron:1:50"
    assert CacheKeys.shop(7) == "shop:7"
    assert CacheKeys.shop_slug("iron-lotus") == "shop:slug:iron-lotus"
    assert CacheKeys.artist(7) == "artist:7"


@pytest.mark.anyio
async def test_read_through_loads_once_within_ttl(cache, clock):
    calls = {"count": 0}

    async def loader():
        calls["count"] += 1
        return {"id": 1, "name": "Ada"}

    first = await cache.read_through("artist:1", 60, loader)
    clock.advance(59)
    second = await cache.read_through("artist:1", 60, loader)

    assert first == second == {"id": 1, "name": "Ada"}
    assert calls["count"] == 1


@pytest.mark.anyio
async def test_read_through_reloads_after_expiry(cache, clock):
    calls = {"count": 0}

    async def loader():
        calls["count"] += 1
        return {"version": calls["count"]}

    await cache.read_through("artist:1", 60, loader)
    clock.advance(61)
    refreshed = await cache.read_through("artist:1", 60, loader)

    assert refreshed == {"version": 2}
    assert calls["count"] == 2


@pytest.mark.anyio
async def test_loader_errors_propagate_and_are_not_cached(cache, fake_redis):
    async def failing_loader():
        raise LookupError("boom")

    with pytest.raises(LookupError):
        await cache.read_through("artist:9", 60, failing_loader)

    assert fake_redis.store == {}


@pytest.mark.anyio
async def test_none_results_are_not_cached(cache, fake_redis):
    async def empty_loader():
        return None

    assert await cache.read_through("artist:9", 60, empty_loader) is None
    assert fake_redis.store == {}


@pytest.mark.anyio
async def test_concurrent_misses_share_one_load(cache):
    calls = {"count": 0}
    release = asyncio.Event()

    async def slow_loader():
        calls["count"] += 1
        await release.wait()
        return {"results": [], "count": 0, "query": "ada"}

    waiters = [
        asyncio.ensure_future(cache.read_through("search:artists:ada", 60, slow_loader))
        for _ in range(5)
    ]
    for _ in range(10):
        await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls["count"] == 1
    assert all(result == results[0] for result in results)


@pytest.mark.anyio
async def test_unreachable_cache_fails_open():
    client = UnreachableRedis()
    gateway = CacheGateway(client, op_timeout=0.1)
    calls = {"count": 0}

    async def loader():
        calls["count"] += 1
        return {"id": 1}

    assert await gateway.get("artist:1") is None
    assert await gateway.set("artist:1", {"id": 1}, 60) is False
    assert await gateway.invalidate("artist:1") == 0
    assert await gateway.invalidate_pattern("search:artists:") == 0
    assert await gateway.read_through("artist:1", 60, loader) == {"id": 1}
    assert await gateway.read_through("artist:1", 60, loader) == {"id": 1}
    assert calls["count"] == 2
    assert client.calls > 0


@pytest.mark.anyio
async def test_slow_cache_counts_as_miss():
    class HangingRedis(FakeRedis):
        async def get(self, key):
            await asyncio.sleep(10)

    gateway = CacheGateway(HangingRedis(), op_timeout=0.01)

    assert await gateway.get("artist:1") is None


@pytest.mark.anyio
async def test_corrupt_entry_is_a_miss(cache, fake_redis, clock):
    fake_redis.store["artist:1"] = ("{not json", clock() + 60)

    assert await cache.get("artist:1") is None


@pytest.mark.anyio
async def test_disabled_gateway_always_misses():
    gateway = CacheGateway(None)
    calls = {"count": 0}

    async def loader():
        calls["count"] += 1
        return {"id": 1}

    await gateway.read_through("artist:1", 60, loader)
    await gateway.read_through("artist:1", 60, loader)

    assert gateway.enabled is False
    assert calls["count"] == 2


@pytest.mark.anyio
async def test_invalidate_pattern_only_touches_namespace(cache, fake_redis):
    for key in ("search:artists:a", "search:artists:b", "search:artists:c"):
        await cache.set(key, {"results": []}, 60)
    await cache.set("artist:1", {"id": 1}, 60)
    await cache.set("shops:all:1:50", {"results": []}, 60)

    deleted = await cache.invalidate_pattern(CacheKeys.SEARCH_PREFIX)

    assert deleted == 3
    assert sorted(fake_redis.store) == ["artist:1", "shops:all:1:50"]


@pytest.mark.anyio
async def test_artist_write_evicts_detail_search_and_cities(cache, fake_redis):
    await cache.set("artist:1", {"id": 1}, 60)
    await cache.set("artist:2", {"id": 2}, 60)
    await cache.set("search:artists:ada", {"results": []}, 60)
    await cache.set("cities:stats:all:1:50", {"results": []}, 60)
    await cache.set("shops:all:1:50", {"results": []}, 60)

    await invalidate_artist_views(cache, 1)

    assert sorted(fake_redis.store) == ["artist:2", "shops:all:1:50"]


@pytest.mark.anyio
async def test_shop_write_evicts_shop_views_and_linked_artists(cache, fake_redis):
    await cache.set("shop:3", {"id": 3}, 60)
    await cache.set("shop:4", {"id": 4}, 60)
    await cache.set("shop:slug:iron-lotus", {"id": 3}, 60)
    await cache.set("shops:all:1:50", {"results": []}, 60)
    await cache.set("artist:1", {"id": 1}, 60)
    await cache.set("artist:2", {"id": 2}, 60)

    await invalidate_shop_views(cache, 3, artist_ids=[1])

    assert sorted(fake_redis.store) == ["artist:2", "shop:4"]


@pytest.mark.anyio
async def test_location_write_sweeps_every_location_bearing_namespace(cache, fake_redis):
    for key in (
        "artist:1",
        "search:artists:ada",
        "cities:stats:all:1:50",
        "shops:all:1:50",
        "shop:3",
        "shop:slug:iron-lotus",
    ):
        await cache.set(key, {"cached": True}, 60)
    await cache.set("unrelated", {"cached": True}, 60)

    await invalidate_location_views(cache)

    assert sorted(fake_redis.store) == ["unrelated"]
