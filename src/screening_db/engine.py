"""Process-wide async engine and session factory for screening sessions.

``get_engine()`` builds the asyncpg engine on first use; ``dispose_engine()``
closes its pool on shutdown.  Pool options come from ``PG_*`` env vars.
"""

import os
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from screening_db.config import get_async_url

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options() -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine`` read from the environment."""
    return {
        "echo": os.getenv("PG_ECHO", "").lower() in ("1", "true"),
        "pool_size": int(os.getenv("PG_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("PG_MAX_OVERFLOW", "10")),
        "pool_recycle": int(os.getenv("PG_POOL_RECYCLE", "1800")),
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_async_url(), **engine_options())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit (``expire_on_commit=False``)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
