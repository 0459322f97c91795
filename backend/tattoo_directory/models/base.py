"""Shared declarative base for all ORM models.

A single ``Base`` keeps the SQLAlchemy metadata in one place so migrations
and test fixtures (``Base.metadata.create_all``) see every table.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass
