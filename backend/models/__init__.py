from backend.models.base import Base, engine, AsyncSessionFactory, enable_sqlite_savepoints
from backend.models.models import (
    Club,
    Registration,
    Gender,
    Locale,
    PhotoMode,
    OPEN_CLUB_NAME,
)

__all__ = [
    "Base",
    "engine",
    "AsyncSessionFactory",
    "enable_sqlite_savepoints",
    "Club",
    "Registration",
    "Gender",
    "Locale",
    "PhotoMode",
    "OPEN_CLUB_NAME",
]
