from fastapi import APIRouter, Depends, Response, status

from tattoo_directory.core.config import Settings
from tattoo_directory.core.db import datastore_deadline
from tattoo_directory.core.deps import get_location_service, get_settings
from tattoo_directory.schemas.location import (
    CityCreate,
    CityUpdate,
    CountryCreate,
    CountryUpdate,
    StateListOut,
)
from tattoo_directory.services.locations import LocationService

router = APIRouter(tags=["locations"])


@router.get("/states", response_model=StateListOut)
async def list_states(
    service: LocationService = Depends(get_location_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        states = await service.list_states()
    return {"states": states}


@router.post("/countries", status_code=status.HTTP_201_CREATED)
async def add_country(
    payload: CountryCreate,
    response: Response,
    service: LocationService = Depends(get_location_service),
    settings: Settings = Depends(get_settings),
):
    """Create a country, or return the existing one with the same name."""

    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        result = await service.add_country(payload)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    verb = "added" if result.created else "already exists"
    return {
        "success": True,
        "country_id": result.id,
        "created": result.created,
        "message": f'Country "{payload.country_name.strip()}" {verb}',
    }


@router.put("/countries/{country_id}")
async def update_country(
    country_id: int,
    payload: CountryUpdate,
    service: LocationService = Depends(get_location_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        await service.update_country(country_id, payload)
    return {"success": True, "country_id": country_id}


@router.post("/cities", status_code=status.HTTP_201_CREATED)
async def add_city(
    payload: CityCreate,
    response: Response,
    service: LocationService = Depends(get_location_service),
    settings: Settings = Depends(get_settings),
):
    """Create a city under ``state_id`` (or under no state), or return the existing one."""

    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        result = await service.add_city(payload)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    verb = "added" if result.created else "already exists"
    return {
        "success": True,
        "city_id": result.id,
        "created": result.created,
        "message": f'City "{payload.city_name.strip()}" {verb}',
    }


@router.put("/cities/{city_id}")
async def update_city(
    city_id: int,
    payload: CityUpdate,
    service: LocationService = Depends(get_location_service),
    settings: Settings = Depends(get_settings),
):
    with datastore_deadline(settings.DB_OP_TIMEOUT_SEC):
        await service.update_city(city_id, payload)
    return {"success": True, "city_id": city_id}
