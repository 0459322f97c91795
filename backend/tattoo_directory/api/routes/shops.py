from typing import Optional

from fastapi import APIRouter, Depends, status

from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.deps import get_query_service, get_settings, get_shop_service
from tattoo_directory.schemas.shop import ShopCreate, ShopListOut, ShopUpdate
from tattoo_directory.services.queries import ReadThroughQueryService
from tattoo_directory.services.shops import ShopService

router = APIRouter(prefix="/shops", tags=["shops"])


@router.get("", response_model=ShopListOut)
async def list_shops(
    query: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    service: ReadThroughQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        return await service.list_shops(query, page, limit)


@router.get("/{shop_ref}")
async def get_shop(
    shop_ref: str,
    service: ReadThroughQueryService = Depends(get_query_service),
    settings: Settings = Depends(get_settings),
):
    """Shop detail by numeric id or by slug."""

    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        shop = await service.get_shop_by_ref(shop_ref)
    return {"result": shop}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_shop(
    payload: ShopCreate,
    service: ShopService = Depends(get_shop_service),
):
    result = await service.create_shop(payload)
    body = {"success": True, "shop_id": result.shop_id, "slug": result.slug}
    if result.slug_error:
        body["degraded"] = [{"step": "slug", "error": result.slug_error}]
    return body


@router.put("/{shop_id}")
async def update_shop(
    shop_id: int,
    payload: ShopUpdate,
    service: ShopService = Depends(get_shop_service),
):
    await service.update_shop(shop_id, payload)
    return {"success": True, "shop_id": shop_id}
