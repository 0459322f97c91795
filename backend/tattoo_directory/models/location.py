"""Location taxonomy: countries, states and cities.

Rows are created lazily the first time a submission references them and are
never deleted by the API. Each level is unique on its natural key so that the
conflict-free inserts in ``LocationRepository`` can rely on the datastore to
reject racing duplicates.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tattoo_directory.models.base import Base


class Country(Base):
    __tablename__ = "countries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    country_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    country_code: Mapped[str] = mapped_column(String(8), nullable=False, default="")

    states: Mapped[list["State"]] = relationship(back_populates="country")


class State(Base):
    __tablename__ = "states"
    __table_args__ = (
        UniqueConstraint("state_name", "country_id", name="uq_states_name_country"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    state_name: Mapped[str] = mapped_column(String(255), nullable=False)
    country_id: Mapped[int] = mapped_column(ForeignKey("countries.id"), nullable=False, index=True)

    country: Mapped[Country] = relationship(back_populates="states")
    cities: Mapped[list["City"]] = relationship(back_populates="state")


class City(Base):
    __tablename__ = "cities"
    __table_args__ = (
        UniqueConstraint("city_name", "state_id", name="uq_cities_name_state"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    city_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # Nullable for countries without subdivisions.
    state_id: Mapped[Optional[int]] = mapped_column(ForeignKey("states.id"), nullable=True, index=True)

    state: Mapped[Optional[State]] = relationship(back_populates="cities")
