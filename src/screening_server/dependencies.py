"""FastAPI dependency injection — DB sessions, engine, store and user identity.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  The session is committed on success and rolled back on
error, matching the SDK convention where engine/repository call
``flush()`` but never ``commit()``.
"""

import hmac
from typing import AsyncGenerator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.engine import get_session_factory
from screening_flow.catalog import CatalogStore
from screening_flow.engine import ScreeningEngine, SubmissionError

from screening_server.fast_path import CallbackDataSource


# ------------------------------------------------------------------
# Database session: transaction boundary lives here
# ------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error.

    A failed submission still commits: the answers recorded in the same
    request must survive so the client can resubmit.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except SubmissionError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise


# ------------------------------------------------------------------
# Engine & store: stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_screening_engine(request: Request) -> ScreeningEngine:
    return request.app.state.engine


def get_store(request: Request) -> CatalogStore:
    return request.app.state.store


def get_data_source(request: Request) -> CallbackDataSource:
    """Return the fast-path data source, or 404 when the fast path is disabled."""
    source = request.app.state.data_source
    if source is None:
        raise HTTPException(status_code=404, detail="Resource not found")
    return source


# ------------------------------------------------------------------
# User identity: extracted from the X-User-ID header
# ------------------------------------------------------------------

async def get_user_id(
    request: Request,
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
) -> str:
    """Extract user identity from the ``X-User-ID`` header.

    Returns 401 if the header is missing.  When ``TRUSTED_PROXY_SECRET``
    is configured, the request must also carry a matching
    ``X-Proxy-Secret`` header.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-ID header is required")

    expected_secret: str | None = request.app.state.settings.trusted_proxy_secret
    if expected_secret:
        if not x_proxy_secret:
            raise HTTPException(status_code=403, detail="X-Proxy-Secret header is required")
        # Constant-time comparison
        if not hmac.compare_digest(x_proxy_secret, expected_secret):
            raise HTTPException(status_code=403, detail="Invalid proxy secret")

    return x_user_id
