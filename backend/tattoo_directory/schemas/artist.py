from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ArtistCreate(BaseModel):
    # ``name`` and the location fields are validated by the ingest service so
    # that missing values surface as 400 with a field-level message.
    name: Optional[str] = None
    instagram_handle: Optional[str] = None
    gender: Optional[str] = None
    url: Optional[str] = None
    contact: Optional[str] = None
    city_id: Optional[int] = None
    city_name: Optional[str] = None
    state_name: Optional[str] = None
    country_name: Optional[str] = None
    shop_id: Optional[int] = None
    is_traveling: Optional[bool] = None


class ArtistUpdate(BaseModel):
    name: Optional[str] = None
    instagram_handle: Optional[str] = None
    gender: Optional[str] = None
    url: Optional[str] = None
    contact: Optional[str] = None
    city_id: Optional[int] = None
    shop_id: Optional[int] = None
    is_traveling: Optional[bool] = None


class ArtistReconcile(BaseModel):
    shop_id: Optional[int] = None


class ShopSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shop_name: str
    instagram_handle: Optional[str] = None


class ArtistSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: Optional[str] = None
    instagram_handle: Optional[str] = None
    city_name: Optional[str] = None
    state_name: Optional[str] = None
    country_name: Optional[str] = None


class ArtistOut(ArtistSummary):
    gender: Optional[str] = None
    url: Optional[str] = None
    contact: Optional[str] = None
    is_traveling: bool = False
    city_id: Optional[int] = None
    shop: Optional[ShopSummary] = None


class DegradedStepOut(BaseModel):
    step: str
    error: str


class ArtistWriteOut(BaseModel):
    success: bool = True
    artist_id: int
    slug: Optional[str] = None
    degraded: List[DegradedStepOut] = []
    message: Optional[str] = None


class ArtistSearchOut(BaseModel):
    results: List[ArtistSummary]
    count: int
    query: str


class ArtistListOut(BaseModel):
    results: List[ArtistSummary]
    count: int
    total: int
    page: int
    limit: int
    totalPages: int
