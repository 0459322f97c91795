import anyio
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from tattoo_directory.core.errors import NotFoundError, ValidationError
from tattoo_directory.models import Artist, ArtistShop, City
from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.shops import ShopRepository
from tattoo_directory.schemas.artist import ArtistCreate, ArtistUpdate
from tattoo_directory.services.artist_ingest import (
    STEP_SHOP_LINK,
    STEP_SLUG,
    ArtistIngestService,
    normalize_handle,
)
from tattoo_directory.services.slugs import SlugAssigner

AUSTIN = {"city_name": "Austin", "state_name": "Texas", "country_name": "USA"}


async def _make_shop(session, city_id: int, name: str = "Iron Lotus") -> int:
    shop_id = await ShopRepository(session).insert({"shop_name": name, "city_id": city_id})
    await session.commit()
    return shop_id


@pytest.mark.parametrize(
    "raw, expected",
    [("@ink.ada", "ink.ada"), ("  ink.ada ", "ink.ada"), ("@", None), ("", None), (None, None)],
)
def test_normalize_handle(raw, expected):
    assert normalize_handle(raw) == expected


@pytest.mark.anyio
async def test_create_artist_resolves_location_and_slug(session, cache):
    service = ArtistIngestService(session, cache)

    result = await service.create_artist(
        ArtistCreate(name="Ada Lovelace", instagram_handle="@ada.ink", **AUSTIN)
    )

    assert result.complete
    assert result.slug == "ada-lovelace"
    artist = await session.get(Artist, result.artist_id)
    assert artist.instagram_handle == "ada.ink"
    city = await session.get(City, artist.city_id)
    assert city.city_name == "Austin"


@pytest.mark.anyio
async def test_duplicate_names_get_id_suffixed_slugs(session, cache):
    service = ArtistIngestService(session, cache)

    first = await service.create_artist(ArtistCreate(name="Jane Doe", **AUSTIN))
    second = await service.create_artist(ArtistCreate(name="Jane Doe", **AUSTIN))

    assert first.slug == "jane-doe"
    assert second.slug == f"jane-doe-{second.artist_id}"
    cities = await session.scalar(select(func.count()).select_from(City))
    assert cities == 1


@pytest.mark.anyio
async def test_create_artist_with_known_city_id(session, cache):
    service = ArtistIngestService(session, cache)
    seeded = await service.create_artist(ArtistCreate(name="Seed", **AUSTIN))
    city_id = (await session.get(Artist, seeded.artist_id)).city_id

    result = await service.create_artist(ArtistCreate(name="Grace Hopper", city_id=city_id))

    assert (await session.get(Artist, result.artist_id)).city_id == city_id


@pytest.mark.anyio
@pytest.mark.parametrize(
    "payload, field",
    [
        ({"name": "   ", **AUSTIN}, "name"),
        ({"name": "Ada"}, "city_id"),
        ({"name": "Ada", "city_name": "Austin", "state_name": "Texas"}, "city_id"),
        ({"name": "Ada", "city_id": 999}, "city_id"),
    ],
)
async def test_create_artist_rejects_incomplete_input(session, cache, payload, field):
    service = ArtistIngestService(session, cache)

    with pytest.raises(ValidationError) as excinfo:
        await service.create_artist(ArtistCreate(**payload))

    assert excinfo.value.field == field
    assert await session.scalar(select(func.count()).select_from(Artist)) == 0


@pytest.mark.anyio
async def test_create_artist_links_shop(session, cache):
    service = ArtistIngestService(session, cache)
    seeded = await service.create_artist(ArtistCreate(name="Seed", **AUSTIN))
    city_id = (await session.get(Artist, seeded.artist_id)).city_id
    shop_id = await _make_shop(session, city_id)

    result = await service.create_artist(ArtistCreate(name="Ada", shop_id=shop_id, **AUSTIN))

    assert result.complete
    assert await ArtistRepository(session).link_exists(result.artist_id, shop_id)


@pytest.mark.anyio
async def test_unknown_shop_degrades_but_keeps_artist(session, cache):
    service = ArtistIngestService(session, cache)

    result = await service.create_artist(ArtistCreate(name="Ada", shop_id=404, **AUSTIN))

    assert not result.complete
    assert [step.step for step in result.degraded] == [STEP_SHOP_LINK]
    assert result.slug == "ada"
    assert await ArtistRepository(session).exists(result.artist_id)
    assert await session.scalar(select(func.count()).select_from(ArtistShop)) == 0


@pytest.mark.anyio
async def test_slug_failure_degrades_and_reconcile_repairs(session, cache, monkeypatch):
    service = ArtistIngestService(session, cache)
    real_assign = SlugAssigner.assign

    async def broken_assign(self, artist_id, candidate):
        raise OperationalError("UPDATE artists", {}, Exception("server has gone away"))

    monkeypatch.setattr(SlugAssigner, "assign", broken_assign)
    result = await service.create_artist(ArtistCreate(name="Jane Doe", **AUSTIN))

    assert result.slug is None
    assert [step.step for step in result.degraded] == [STEP_SLUG]
    assert await ArtistRepository(session).get_slug(result.artist_id) is None

    monkeypatch.setattr(SlugAssigner, "assign", real_assign)
    repaired = await service.reconcile(result.artist_id)

    assert repaired.complete
    assert repaired.slug == "jane-doe"
    again = await service.reconcile(result.artist_id)
    assert again.slug == "jane-doe"


@pytest.mark.anyio
async def test_reconcile_adds_missing_shop_link_once(session, cache):
    service = ArtistIngestService(session, cache)
    created = await service.create_artist(ArtistCreate(name="Ada", **AUSTIN))
    city_id = (await session.get(Artist, created.artist_id)).city_id
    shop_id = await _make_shop(session, city_id)

    await service.reconcile(created.artist_id, shop_id)
    await service.reconcile(created.artist_id, shop_id)

    links = await session.scalar(select(func.count()).select_from(ArtistShop))
    assert links == 1


@pytest.mark.anyio
async def test_reconcile_unknown_artist(session, cache):
    with pytest.raises(NotFoundError):
        await ArtistIngestService(session, cache).reconcile(12345)


@pytest.mark.anyio
async def test_create_evicts_cached_listings(session, cache, fake_redis):
    await cache.set("search:artists:ada", {"results": [], "count": 0, "query": "ada"}, 60)
    await cache.set("cities:stats:all:1:50", {"results": []}, 60)

    await ArtistIngestService(session, cache).create_artist(ArtistCreate(name="Ada", **AUSTIN))

    assert fake_redis.store == {}


@pytest.mark.anyio
async def test_update_artist_applies_partial_changes(session, cache):
    service = ArtistIngestService(session, cache)
    created = await service.create_artist(
        ArtistCreate(name="Ada", gender="female", is_traveling=False, **AUSTIN)
    )
    city_id = (await session.get(Artist, created.artist_id)).city_id
    shop_id = await _make_shop(session, city_id)
    await cache.set(f"artist:{created.artist_id}", {"id": created.artist_id}, 60)

    result = await service.update_artist(
        created.artist_id,
        ArtistUpdate(instagram_handle="@ada.new", is_traveling=True, shop_id=shop_id),
    )

    assert result.complete
    assert result.slug == "ada"
    await session.commit()
    artist = await session.get(Artist, created.artist_id, populate_existing=True)
    assert artist.instagram_handle == "ada.new"
    assert artist.is_traveling is True
    assert artist.gender == "female"
    assert await ArtistRepository(session).link_exists(created.artist_id, shop_id)
    assert await cache.get(f"artist:{created.artist_id}") is None


@pytest.mark.anyio
async def test_update_missing_artist(session, cache):
    with pytest.raises(NotFoundError):
        await ArtistIngestService(session, cache).update_artist(77, ArtistUpdate(name="Nobody"))


@pytest.mark.anyio
async def test_slug_lands_when_suffixed_form_is_already_taken(session, cache):
    service = ArtistIngestService(session, cache)
    first = await service.create_artist(ArtistCreate(name="Jane Doe", **AUSTIN))
    # The next artist's name slugifies to exactly the suffixed form the third
    # artist would fall back to.
    squatter = await service.create_artist(
        ArtistCreate(name=f"Jane Doe {first.artist_id + 2}", **AUSTIN)
    )
    third = await service.create_artist(ArtistCreate(name="Jane Doe", **AUSTIN))

    assert third.artist_id == first.artist_id + 2
    assert squatter.slug == f"jane-doe-{third.artist_id}"
    assert third.complete
    assert third.slug == f"jane-doe-{third.artist_id}-2"

    again = await service.reconcile(third.artist_id)
    assert again.complete
    assert again.slug == third.slug


@pytest.mark.anyio
async def test_stalled_slug_step_degrades_instead_of_failing(session, cache, monkeypatch):
    async def stalled_assign(self, record_id, candidate):
        await anyio.sleep(30)

    monkeypatch.setattr(SlugAssigner, "assign", stalled_assign)
    service = ArtistIngestService(session, cache, step_timeout=0.5)

    result = await service.create_artist(ArtistCreate(name="Ada", **AUSTIN))

    assert result.slug is None
    assert [step.step for step in result.degraded] == [STEP_SLUG]
    assert "timed out" in result.degraded[0].error
    assert await ArtistRepository(session).exists(result.artist_id)
