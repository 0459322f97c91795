"""Typed query layer: one method per query shape, returning schemas or ids."""

from tattoo_directory.repositories.artists import ArtistRepository
from tattoo_directory.repositories.locations import LocationRepository
from tattoo_directory.repositories.shops import ShopRepository

__all__ = ["ArtistRepository", "LocationRepository", "ShopRepository"]
