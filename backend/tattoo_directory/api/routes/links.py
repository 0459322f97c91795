from fastapi import APIRouter, Depends, status

from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.deps import get_settings, get_shop_service
from tattoo_directory.schemas.shop import ArtistShopLinkCreate
from tattoo_directory.services.shops import ShopService

router = APIRouter(prefix="/artist-shop-links", tags=["shops"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_link(
    payload: ArtistShopLinkCreate,
    service: ShopService = Depends(get_shop_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        await service.link_artist(payload)
    return {
        "success": True,
        "artist_id": payload.artist_id,
        "shop_id": payload.shop_id,
    }
