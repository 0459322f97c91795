from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tattoo_directory.core.cache import CacheGateway, CacheTTL
from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import get_session
from tattoo_directory.services.artist_ingest import ArtistIngestService
from tattoo_directory.services.locations import LocationService
from tattoo_directory.services.queries import ReadThroughQueryService
from tattoo_directory.services.shops import ShopService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> CacheGateway:
    return request.app.state.cache


def get_query_service(
    session: AsyncSession = Depends(get_session),
    cache: CacheGateway = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> ReadThroughQueryService:
    return ReadThroughQueryService(
        session,
        cache,
        CacheTTL.from_settings(settings),
        search_limit=settings.SEARCH_RESULT_LIMIT,
        max_page_size=settings.MAX_PAGE_SIZE,
    )


def get_ingest_service(
    session: AsyncSession = Depends(get_session),
    cache: CacheGateway = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> ArtistIngestService:
    return ArtistIngestService(session, cache, step_timeout=settings.DB_OP_TIMEOUT_SEC)


def get_shop_service(
    session: AsyncSession = Depends(get_session),
    cache: CacheGateway = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> ShopService:
    return ShopService(session, cache, step_timeout=settings.DB_OP_TIMEOUT_SEC)


def get_location_service(
    session: AsyncSession = Depends(get_session),
    cache: CacheGateway = Depends(get_cache),
) -> LocationService:
    return LocationService(session, cache)
