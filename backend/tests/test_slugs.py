from itertools import islice

import pytest

from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.shops import ShopRepository
from tattoo_directory.services.location_resolver import LocationResolver
from tattoo_directory.services.slugs import (
    MAX_SLUG_LENGTH,
    SlugAssigner,
    slug_options,
    slugify,
    suffixed,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("John O'Hara's Tattoo", "john-oharas-tattoo"),
        ("  Ada   Lovelace  ", "ada-lovelace"),
        ("snake_case__name", "snake-case-name"),
        ("Zoë & Co. ~ Ink!", "zo-co-ink"),
        ("--Leading and trailing--", "leading-and-trailing"),
        ('"Quoted" Name', "quoted-name"),
        ("!!!", ""),
    ],
)
def test_slugify(name, expected):
    assert slugify(name) == expected


def test_slugify_truncates_long_names():
    assert len(slugify("a" * 250)) == MAX_SLUG_LENGTH


def test_suffixed_uses_artist_prefix_for_empty_candidate():
    assert suffixed("", 42) == "artist-42"
    assert suffixed("jane-doe", 42) == "jane-doe-42"


@pytest.mark.anyio
async def test_assign_suffixes_when_slug_taken(session):
    repo = ArtistRepository(session)
    first = await repo.insert({"name": "Jane Doe"})
    second = await repo.insert({"name": "Jane Doe"})
    await session.commit()

    assigner = SlugAssigner(session)
    assert await assigner.assign(first, "jane-doe") == "jane-doe"
    assert await assigner.assign(second, "jane-doe") == f"jane-doe-{second}"
    assert await repo.get_slug(second) == f"jane-doe-{second}"


@pytest.mark.anyio
async def test_assign_is_stable_on_rerun(session):
    repo = ArtistRepository(session)
    first = await repo.insert({"name": "Jane Doe"})
    second = await repo.insert({"name": "Jane Doe"})
    await session.commit()

    assigner = SlugAssigner(session)
    await assigner.assign(first, "jane-doe")
    await assigner.assign(second, "jane-doe")

    assert await assigner.assign(first, "jane-doe") == "jane-doe"
    assert await assigner.assign(second, "jane-doe") == f"jane-doe-{second}"


@pytest.mark.anyio
async def test_assign_falls_back_when_candidate_taken_after_check(session, monkeypatch):
    repo = ArtistRepository(session)
    holder = await repo.insert({"name": "Jane Doe", "slug": "jane-doe"})
    late = await repo.insert({"name": "Jane Doe"})
    await session.commit()

    assigner = SlugAssigner(session)

    real_resolve = assigner.resolve

    async def stale_resolve(record_id, candidate, *, skip=frozenset()):
        # The first check misses a writer that claims the slug right after it.
        if not skip:
            return candidate
        return await real_resolve(record_id, candidate, skip=skip)

    monkeypatch.setattr(assigner, "resolve", stale_resolve)

    assert await assigner.assign(late, "jane-doe") == f"jane-doe-{late}"
    assert await repo.get_slug(holder) == "jane-doe"


@pytest.mark.anyio
async def test_empty_candidate_gets_id_slug(session):
    repo = ArtistRepository(session)
    artist_id = await repo.insert({"name": "!!!"})
    await session.commit()

    assert await SlugAssigner(session).assign(artist_id, "") == f"artist-{artist_id}"


def test_slug_options_order():
    assert list(islice(slug_options("jane-doe", 7), 4)) == [
        "jane-doe",
        "jane-doe-7",
        "jane-doe-7-2",
        "jane-doe-7-3",
    ]
    assert list(islice(slug_options("", 7, "shop"), 2)) == ["shop-7", "shop-7-2"]


@pytest.mark.anyio
async def test_assign_moves_past_a_taken_suffixed_slug(session):
    repo = ArtistRepository(session)
    await repo.insert({"name": "Jane Doe", "slug": "jane-doe"})
    late = await repo.insert({"name": "Jane Doe"})
    await repo.insert({"name": f"Jane Doe {late}", "slug": f"jane-doe-{late}"})
    await session.commit()

    assigner = SlugAssigner(session)

    assert await assigner.assign(late, "jane-doe") == f"jane-doe-{late}-2"
    assert await repo.get_slug(late) == f"jane-doe-{late}-2"
    assert await assigner.assign(late, "jane-doe") == f"jane-doe-{late}-2"


@pytest.mark.anyio
async def test_empty_candidate_moves_past_a_taken_id_slug(session):
    repo = ArtistRepository(session)
    artist_id = await repo.insert({"name": "!!!"})
    await repo.insert({"name": f"Artist {artist_id}", "slug": f"artist-{artist_id}"})
    await session.commit()

    assert await SlugAssigner(session).assign(artist_id, "") == f"artist-{artist_id}-2"


@pytest.mark.anyio
async def test_shop_slugs_are_separate_from_artist_slugs(session):
    artist_id = await ArtistRepository(session).insert({"name": "Iron Lotus", "slug": "iron-lotus"})
    city_id = await LocationResolver(session).resolve("USA", "Texas", "Austin")
    shops = ShopRepository(session)
    first = await shops.insert({"shop_name": "Iron Lotus", "city_id": city_id})
    second = await shops.insert({"shop_name": "Iron Lotus", "city_id": city_id})
    unnamed = await shops.insert({"shop_name": "???", "city_id": city_id})
    await session.commit()

    assigner = SlugAssigner(session, shops, prefix="shop")

    assert await assigner.assign(first, "iron-lotus") == "iron-lotus"
    assert await assigner.assign(second, "iron-lotus") == f"iron-lotus-{second}"
    assert await assigner.assign(unnamed, "") == f"shop-{unnamed}"
    assert await ArtistRepository(session).get_slug(artist_id) == "iron-lotus"
