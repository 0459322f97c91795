from typing import List, Optional

from pydantic import BaseModel

from tattoo_directory.schemas.artist import ArtistSummary


class CityStatsOut(BaseModel):
    id: int
    city_name: str
    state_name: Optional[str] = None
    country_name: Optional[str] = None
    artist_count: int = 0


class CityWithArtistsOut(CityStatsOut):
    artists: List[ArtistSummary] = []



class StateOut(BaseModel):
    id: int
    state_name: str
    country_id: Optional[int] = None
    country_name: Optional[str] = None


class StateListOut(BaseModel):
    states: List[StateOut]


class CountryCreate(BaseModel):
    country_name: Optional[str] = None
    country_code: Optional[str] = None


class CountryUpdate(BaseModel):
    country_name: Optional[str] = None
    country_code: Optional[str] = None


class CityCreate(BaseModel):
    city_name: Optional[str] = None
    # Omitted for countries without states.
    state_id: Optional[int] = None


class CityUpdate(BaseModel):
    city_name: Optional[str] = None
    state_id: Optional[int] = None

