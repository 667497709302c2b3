"""screening_db — PostgreSQL persistence layer for screening sessions.

This package provides the ORM model, async engine factory, and repository
for creating, updating, and querying screening sessions.  It is consumed
by the ``screening_flow`` engine and the FastAPI server.
"""

from screening_db.models.session import ScreeningSession
from screening_db.models.enums import SessionPath, SessionStatus
from screening_db.engine import get_engine, get_session_factory
from screening_db.repository import SessionRepository

__all__ = [
    "ScreeningSession",
    "SessionPath",
    "SessionStatus",
    "get_engine",
    "get_session_factory",
    "SessionRepository",
]
