"""Fast-path endpoints — answer questions from the user's health record.

Client flow:

  1. ``POST /sessions/{id}/fast-path``          → ``connect_url`` to open
  2. user authorizes with the record provider
  3. provider calls ``POST /fast-path/callback`` with the signed ``state``
     (or the client posts ``/fast-path/message`` / ``/fast-path/closed``)
  4. ``POST /sessions/{id}/fast-path/wait``     → value to confirm
  5. ``POST /sessions/{id}/fast-path/confirm``  → next step (or completion)

The callback endpoint carries no ``X-User-ID``; the HMAC-signed state
token is what binds it to a session.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from screening_flow.engine import ScreeningEngine
from screening_flow.models.session import FastPathStep, QuestionStep, StepResult

from screening_server.dependencies import (
    get_data_source,
    get_db,
    get_screening_engine,
    get_user_id,
)
from screening_server.fast_path import CallbackDataSource

router = APIRouter(tags=["fast-path"])


class StartFastPathRequest(BaseModel):
    """Body for POST /sessions/{session_id}/fast-path (defaults to the current question)."""
    qid: str | None = None


class FastPathMessageRequest(BaseModel):
    message: dict[str, Any]


class ConfirmFastPathRequest(BaseModel):
    accept: bool


class FastPathCallbackRequest(BaseModel):
    """Provider callback: either a message or a ``closed`` notification."""
    state: str
    message: dict[str, Any] | None = None
    closed: bool = False


@router.post("/sessions/{session_id}/fast-path")
async def start_fast_path(
    session_id: str,
    body: StartFastPathRequest | None = None,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> FastPathStep:
    return await engine.start_fast_path(
        db, user_id=user_id, session_id=session_id, qid=body.qid if body else None,
    )


@router.get("/sessions/{session_id}/fast-path")
async def get_fast_path(
    session_id: str,
    user_id: str = Depends(get_user_id),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> FastPathStep:
    return engine.get_fast_path(user_id=user_id, session_id=session_id)


@router.post("/sessions/{session_id}/fast-path/wait")
async def wait_fast_path(
    session_id: str,
    timeout: float = Query(25.0, ge=0, le=60),
    user_id: str = Depends(get_user_id),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> FastPathStep:
    """Long-poll until the attempt settles or ``timeout`` seconds pass."""
    return await engine.wait_fast_path(user_id=user_id, session_id=session_id, timeout=timeout)


@router.post("/sessions/{session_id}/fast-path/message")
async def post_fast_path_message(
    session_id: str,
    body: FastPathMessageRequest,
    user_id: str = Depends(get_user_id),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> dict:
    accepted = engine.deliver_fast_path_message(
        user_id=user_id, session_id=session_id, message=body.message,
    )
    return {"accepted": accepted}


@router.post("/sessions/{session_id}/fast-path/closed")
async def fast_path_closed(
    session_id: str,
    user_id: str = Depends(get_user_id),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> dict:
    return {"accepted": engine.notify_fast_path_closed(user_id=user_id, session_id=session_id)}


@router.post("/sessions/{session_id}/fast-path/cancel")
async def cancel_fast_path(
    session_id: str,
    user_id: str = Depends(get_user_id),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> FastPathStep:
    return await engine.cancel_fast_path(user_id=user_id, session_id=session_id)


@router.post("/sessions/{session_id}/fast-path/manual")
async def choose_manual_entry(
    session_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> QuestionStep:
    return await engine.choose_manual_entry(db, user_id=user_id, session_id=session_id)


@router.post("/sessions/{session_id}/fast-path/confirm")
async def confirm_fast_path(
    session_id: str,
    body: ConfirmFastPathRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> StepResult:
    """Accept or reject the value found in the health record.

    Accepting may complete the session when every required answer is now
    filled; the response is then the completion result.
    """
    return await engine.confirm_fast_path(
        db, user_id=user_id, session_id=session_id, accept=body.accept,
    )


@router.post("/fast-path/callback")
async def fast_path_callback(
    body: FastPathCallbackRequest,
    source: CallbackDataSource = Depends(get_data_source),
) -> dict:
    """Provider callback bound to an attempt by its signed ``state`` token."""
    if body.closed:
        return {"accepted": source.notify_closed(body.state)}
    return {"accepted": source.deliver(body.state, body.message)}
