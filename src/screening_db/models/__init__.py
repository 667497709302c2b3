"""ORM models for screening_db."""

from screening_db.models.base import Base
from screening_db.models.enums import SessionPath, SessionStatus
from screening_db.models.session import ScreeningSession

__all__ = ["Base", "SessionPath", "SessionStatus", "ScreeningSession"]
