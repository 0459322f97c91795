"""URL slugs for artists and shops.

``slugify`` is pure; ``SlugAssigner`` resolves uniqueness against existing
rows once the row (and therefore its id) exists.
"""

from __future__ import annotations

import re
from itertools import count, islice
from typing import Iterator, Optional, Protocol

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.db_errors import is_unique_violation
from tattoo_directory.core.errors import ResolutionConflict
from tattoo_directory.repositories.artists import ArtistRepository

MAX_SLUG_LENGTH = 100
# Slug options tried per assignment before giving up.
MAX_SLUG_OPTIONS = 50
# Writes attempted when concurrent writers keep taking the chosen slug.
MAX_SLUG_WRITES = 3

_QUOTES = re.compile(r"['\"]")
_SEPARATORS = re.compile(r"[\s_]+")
_DISALLOWED = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUNS = re.compile(r"-+")


class SlugStore(Protocol):
    async def slug_holder(self, slug: str, *, exclude_id: int) -> Optional[int]: ...

    async def set_slug(self, record_id: int, slug: str) -> None: ...


def slugify(name: str) -> str:
    """Turn a display name into a URL-safe candidate slug.

    >>> slugify("John O'Hara's Tattoo")
    'john-oharas-tattoo'
    """

    slug = name.lower().strip()
    slug = _QUOTES.sub("", slug)
    slug = _SEPARATORS.sub("-", slug)
    slug = _DISALLOWED.sub("", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    slug = slug.strip("-")
    return slug[:MAX_SLUG_LENGTH]


def suffixed(candidate: str, record_id: int, prefix: str = "artist") -> str:
    if not candidate:
        return f"{prefix}-{record_id}"
    return f"{candidate}-{record_id}"


def slug_options(candidate: str, record_id: int, prefix: str = "artist") -> Iterator[str]:
    """Slugs in order of preference: the candidate, ``-{id}``, then ``-{id}-2`` onwards."""

    if candidate:
        yield candidate
    base = suffixed(candidate, record_id, prefix)
    yield base
    for n in count(2):
        yield f"{base}-{n}"


class SlugAssigner:
    """Pick and persist the final slug of an existing row.

    Safe to rerun: the preference order is fixed and the row's own slug never
    counts as taken, so a rerun lands on the slug the row already holds.
    """

    def __init__(
        self,
        session: AsyncSession,
        repo: Optional[SlugStore] = None,
        *,
        prefix: str = "artist",
    ):
        self.session = session
        self.repo = repo or ArtistRepository(session)
        self.prefix = prefix

    async def resolve(
        self, record_id: int, candidate: str, *, skip: frozenset[str] = frozenset()
    ) -> str:
        """First slug in preference order that no other row holds."""

        options = islice(slug_options(candidate, record_id, self.prefix), MAX_SLUG_OPTIONS)
        for option in options:
            if option in skip:
                continue
            if await self.repo.slug_holder(option, exclude_id=record_id) is None:
                return option
        raise ResolutionConflict(
            f"No free slug for '{candidate}'",
            details=f"{MAX_SLUG_OPTIONS} options already taken",
        )

    async def assign(self, record_id: int, candidate: str) -> str:
        """Write the slug for ``candidate`` and commit. Raises on datastore failure."""

        attempted: set[str] = set()
        slug = await self.resolve(record_id, candidate)
        while True:
            try:
                await self.repo.set_slug(record_id, slug)
                await self.session.commit()
                return slug
            except IntegrityError as exc:
                # Another writer took the slug between the check and the write.
                await self.session.rollback()
                attempted.add(slug)
                if not is_unique_violation(exc) or len(attempted) >= MAX_SLUG_WRITES:
                    raise
                fallback = await self.resolve(record_id, candidate, skip=frozenset(attempted))
                logger.bind(record_id=record_id, slug=slug, fallback=fallback).warning(
                    "slug_taken_concurrently"
                )
                slug = fallback
