"""Declarative base for the screening tables."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Names for indexes and unique constraints declared without one; they match
# the names the initial migration creates.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
