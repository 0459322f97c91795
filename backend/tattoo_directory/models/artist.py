"""Artist records and their link to tattoo shops."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tattoo_directory.models.base import Base


class Artist(Base):
    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # NULL until slug assignment completes; unique once set.
    slug: Mapped[Optional[str]] = mapped_column(String(120), unique=True, nullable=True)
    city_id: Mapped[Optional[int]] = mapped_column(ForeignKey("cities.id"), nullable=True, index=True)
    instagram_handle: Mapped[Optional[str]] = mapped_column(String(255))
    gender: Mapped[Optional[str]] = mapped_column(String(32))
    url: Mapped[Optional[str]] = mapped_column(String(512))
    contact: Mapped[Optional[str]] = mapped_column(String(255))
    is_traveling: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ArtistShop(Base):
    """Join row; in practice an artist has one active shop."""

    __tablename__ = "artist_shop"

    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), primary_key=True)
    shop_id: Mapped[int] = mapped_column(ForeignKey("tattoo_shops.id"), primary_key=True)
