from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.deps import get_ingest_service, get_query_service, get_settings
from tattoo_directory.core.rate_limit import artist_submit_rate, limiter
from tattoo_directory.schemas.artist import (
    ArtistCreate,
    ArtistListOut,
    ArtistReconcile,
    ArtistUpdate,
    ArtistWriteOut,
    DegradedStepOut,
)
from tattoo_directory.services.artist_ingest import ArtistIngestService, IngestResult
from tattoo_directory.services.queries import ReadThroughQueryService

router = APIRouter(prefix="/artists", tags=["artists"])


def _write_out(result: IngestResult, message: str) -> ArtistWriteOut:
    if not result.complete:
        steps = ", ".join(step.step for step in result.degraded)
        message = f"{message}; follow-up steps pending: {steps}"
    return ArtistWriteOut(
        artist_id=result.artist_id,
        slug=result.slug,
        degraded=[DegradedStepOut(step=d.step, error=d.error) for d in result.degraded],
        message=message,
    )


# Write routes are bounded per step inside ArtistIngestService, so a slow
# follow-up step degrades instead of failing a committed artist.
@router.post("", response_model=ArtistWriteOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(artist_submit_rate)
async def create_artist(
    request: Request,
    payload: ArtistCreate,
    service: ArtistIngestService = Depends(get_ingest_service),
):
    result = await service.create_artist(payload)
    return _write_out(result, "Artist created")


@router.get("", response_model=ArtistListOut)
async def list_artists(
    page: int = 1,
    limit: int = 50,
    service: ReadThroughQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        return await service.list_artists(page=page, limit=limit)


@router.get("/{artist_id}")
async def get_artist(
    artist_id: int,
    service: ReadThroughQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        artist = await service.get_artist(artist_id)
    return {"result": artist}


@router.put("/{artist_id}", response_model=ArtistWriteOut)
async def update_artist(
    artist_id: int,
    payload: ArtistUpdate,
    service: ArtistIngestService = Depends(get_ingest_service),
):
    result = await service.update_artist(artist_id, payload)
    return _write_out(result, "Artist updated")


@router.post("/{artist_id}/reconcile", response_model=ArtistWriteOut)
async def reconcile_artist(
    artist_id: int,
    payload: Optional[ArtistReconcile] = None,
    service: ArtistIngestService = Depends(get_ingest_service),
):
    shop_id = payload.shop_id if payload else None
    result = await service.reconcile(artist_id, shop_id)
    return _write_out(result, "Artist reconciled")
