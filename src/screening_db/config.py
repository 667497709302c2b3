"""Database configuration — reads connection parameters from environment.

Supports two modes:
1. A single ``DATABASE_URL`` env var (takes precedence).
2. Individual ``PG_HOST``, ``PG_PORT``, ``PG_USER``, ``PG_PASSWORD``,
   ``PG_DATABASE`` env vars (convenient for docker-compose).

``get_sync_url()`` serves Alembic migrations; ``get_async_url()`` serves
the asyncpg engine at runtime.
"""

import os

_ASYNC_PREFIX = "postgresql+asyncpg://"
_SYNC_PREFIX = "postgresql://"


def _build_url_from_parts() -> str:
    host = os.getenv("PG_HOST", "localhost")
    port = os.getenv("PG_PORT", "5432")
    user = os.getenv("PG_USER", "screening")
    password = os.getenv("PG_PASSWORD", "screening")
    database = os.getenv("PG_DATABASE", "screening")
    return f"{_SYNC_PREFIX}{user}:{password}@{host}:{port}/{database}"


def get_sync_url() -> str:
    """Return a synchronous connection URL (Alembic runs synchronously)."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url.replace(_ASYNC_PREFIX, _SYNC_PREFIX)
    return _build_url_from_parts()


def get_async_url() -> str:
    """Return an asyncpg connection URL for the async SQLAlchemy engine."""
    url = os.getenv("DATABASE_URL") or _build_url_from_parts()
    if url.startswith(_SYNC_PREFIX):
        return url.replace(_SYNC_PREFIX, _ASYNC_PREFIX, 1)
    return url
