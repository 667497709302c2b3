"""Session management endpoints — create, get, list sessions.

All endpoints require the ``X-User-ID`` header for user identification.
Session identity is the (user_id, session_id) pair, enforced by a unique
constraint in the database.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from screening_flow.engine import ScreeningEngine
from screening_flow.models.session import SessionInfo

from screening_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from screening_server.dependencies import get_db, get_screening_engine, get_user_id

router = APIRouter(tags=["sessions"])


class CreateSessionRequest(BaseModel):
    """Body for POST /sessions."""
    session_id: str
    program_id: str


@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> SessionInfo:
    """Start screening for a program.

    Returns 201 on success, 404 for an unknown program and 409 if the
    (user_id, session_id) pair is taken.
    """
    return await engine.create_session(
        db, user_id=user_id, session_id=body.session_id, program_id=body.program_id,
    )


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> SessionInfo:
    info = await engine.get_session(db, user_id=user_id, session_id=session_id)
    if info is None:
        raise ValueError(f"Session not found: session_id={session_id}")
    return info


@router.get("/sessions")
async def list_sessions(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
    program_id: str | None = Query(None),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> list[SessionInfo]:
    """List sessions for the current user, most recent first."""
    return await engine.list_sessions(
        db, user_id=user_id, program_id=program_id, limit=limit, offset=offset,
    )
