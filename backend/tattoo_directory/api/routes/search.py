from typing import Optional

from fastapi import APIRouter, Depends

from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.deps import get_query_service, get_settings
from tattoo_directory.schemas.artist import ArtistSearchOut
from tattoo_directory.services.queries import ReadThroughQueryService

router = APIRouter(tags=["search"])


@router.get("/search-artists", response_model=ArtistSearchOut)
async def search_artists(
    query: Optional[str] = None,
    service: ReadThroughQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    # ``query`` is optional here so a missing value gets the domain 400 body.
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        return await service.search_artists(query or "")
