"""ORM model exports for convenient imports elsewhere in the app."""

from tattoo_directory.models.base import Base
from tattoo_directory.models.location import City, Country, State
from tattoo_directory.models.shop import TattooShop
from tattoo_directory.models.artist import Artist, ArtistShop

__all__ = [
    "Base",
    "Country",
    "State",
    "City",
    "TattooShop",
    "Artist",
    "ArtistShop",
]
