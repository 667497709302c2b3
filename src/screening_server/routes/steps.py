"""Step endpoints — drive a session through its questionnaire.

  - ``GET  /sessions/{id}/step``      current question or completion result
  - ``POST /sessions/{id}/step``      answer the current question
  - ``POST /sessions/{id}/back``      return to the previous question
  - ``GET  /sessions/{id}/progress``  completion snapshot
  - ``POST /sessions/{id}/submit``    submit (or retry a failed submission)

An invalid answer is not an HTTP error: the same question comes back with
``error`` set.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from screening_flow.engine import ScreeningEngine
from screening_flow.models.session import CompletionStep, ProgressInfo, StepResult

from screening_server.dependencies import get_db, get_screening_engine, get_user_id

router = APIRouter(tags=["steps"])


class SubmitAnswerRequest(BaseModel):
    """Body for POST /sessions/{session_id}/step.

    ``qid`` is optional; the engine answers the current question when omitted.
    """
    qid: str | None = None
    value: Any = None


@router.get("/sessions/{session_id}/step")
async def get_current_step(
    session_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> StepResult:
    return await engine.get_current_step(db, user_id=user_id, session_id=session_id)


@router.post("/sessions/{session_id}/step")
async def submit_answer(
    session_id: str,
    body: SubmitAnswerRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> StepResult:
    """Answer the current question and advance the session.

    Returns the next question, or the completion result when the answer
    finished the questionnaire.
    """
    return await engine.submit_answer(
        db, user_id=user_id, session_id=session_id, qid=body.qid, value=body.value,
    )


@router.post("/sessions/{session_id}/back")
async def step_back(
    session_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> StepResult:
    return await engine.step_back(db, user_id=user_id, session_id=session_id)


@router.get("/sessions/{session_id}/progress")
async def get_progress(
    session_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> ProgressInfo:
    return await engine.get_progress(db, user_id=user_id, session_id=session_id)


@router.post("/sessions/{session_id}/submit")
async def submit(
    session_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    engine: ScreeningEngine = Depends(get_screening_engine),
) -> CompletionStep:
    """Submit the session for evaluation.

    Safe to repeat: a submitted session returns its stored result.  Returns
    502 when evaluation fails; the answers are kept for a retry.
    """
    return await engine.submit(db, user_id=user_id, session_id=session_id)
