from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ShopCreate(BaseModel):
    shop_name: Optional[str] = None
    city_id: Optional[int] = None
    instagram_handle: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None
    phone_number: Optional[str] = None
    website_url: Optional[str] = None


class ShopUpdate(BaseModel):
    shop_name: Optional[str] = None
    city_id: Optional[int] = None
    instagram_handle: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None
    phone_number: Optional[str] = None
    website_url: Optional[str] = None


class ShopOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shop_name: str
    slug: Optional[str] = None
    instagram_handle: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None
    phone_number: Optional[str] = None
    website_url: Optional[str] = None
    city_id: Optional[int] = None
    city_name: Optional[str] = None
    state_name: Optional[str] = None
    country_name: Optional[str] = None


class ShopListOut(BaseModel):
    results: List[ShopOut]
    count: int
    total: int
    page: int
    limit: int
    totalPages: int
    query: Optional[str] = None


class ArtistShopLinkCreate(BaseModel):
    artist_id: Optional[int] = None
    shop_id: Optional[int] = None
