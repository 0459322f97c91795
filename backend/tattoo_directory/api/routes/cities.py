from typing import Optional

from fastapi import APIRouter, Depends

from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.deps import get_query_service, get_settings
from tattoo_directory.services.queries import ReadThroughQueryService

router = APIRouter(prefix="/cities", tags=["cities"])


@router.get("")
async def list_cities(
    city: Optional[str] = None,
    state: Optional[str] = None,
    country: Optional[str] = None,
    include_artists: bool = False,
    page: int = 1,
    limit: int = 50,
    service: ReadThroughQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    """Cities with artist counts, optionally with each city's artists."""

    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        return await service.list_cities(
            city=city,
            state=state,
            country=country,
            include_artists=include_artists,
            page=page,
            limit=limit,
        )
