"""Session and step models — the contract between the engine and API callers.

These models define what the engine returns at each step of the screening
flow.  They are intentionally decoupled from the ORM models in
``screening_db`` so that API consumers never see database internals.

Step types:
  - QuestionStep: present the current question (optionally with the fast
    path offered, or with a validation error for the last answer)
  - FastPathStep: state of an in-flight external-record lookup
  - CompletionStep: answers submitted, evaluation available

The ``StepResult`` union covers all cases so callers can dispatch on ``type``.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

from screening_flow.models.fast_path import FastPathState
from screening_flow.models.outcome import Evaluation


class NavigationState(BaseModel):
    """Where the user is in the questionnaire.

    ``history`` holds the ids of questions already passed, most recent last.
    Only the navigation engine produces new states.
    """

    current_index: int = 0
    history: list[str] = []
    is_complete: bool = False


class QuestionPayload(BaseModel):
    """Flattened question for API consumers.

    Strips rule/mapping internals and presents only what the UI needs to
    render the question.
    """

    qid: str
    text: str
    question_type: str
    required: bool
    help_text: str | None = None
    # Choice options, in catalog order
    options: list[str] | None = None
    # {min, max} for numeric questions
    constraints: dict | None = None
    # Display name of the external record field, when the fast path applies
    external_display_name: str | None = None
    # Previously recorded answer (e.g. after stepping back)
    previous_value: Any = None


class ProgressInfo(BaseModel):
    """Completion snapshot derived from the answer map."""

    progress: int
    answered: int
    total: int
    is_complete: bool
    unanswered_required: list[str]


class QuestionStep(BaseModel):
    """Engine step: present the current question and wait for an answer."""

    type: Literal["question"] = "question"
    index: int
    total: int
    question: QuestionPayload
    progress: int
    can_go_back: bool
    # True when the user may pull this answer from their health record
    fast_path_offered: bool = False
    # Validation error for the value just submitted (nothing was recorded)
    error: str | None = None


class FastPathStep(BaseModel):
    """Engine step: an external-record lookup for one question."""

    type: Literal["fast_path"] = "fast_path"
    qid: str
    state: FastPathState
    # URL the client opens to authorize the external source
    connect_url: str | None = None
    # Extracted value awaiting the user's confirmation
    value: Any = None
    # Neutral, user-facing message (never a raw technical error)
    message: str | None = None


class CompletionStep(BaseModel):
    """Engine step: the session was submitted and evaluated."""

    type: Literal["completed"] = "completed"
    evaluation: Evaluation
    answers: dict[str, Any]


# Callers can match on step.type to dispatch rendering logic.
StepResult = QuestionStep | FastPathStep | CompletionStep


class SessionInfo(BaseModel):
    """Public view of session state for API consumers.

    Maps from the ORM ``ScreeningSession`` model but exposes only what
    external callers need.
    """

    user_id: str
    session_id: str
    program_id: str
    catalog_version: str | None
    status: str
    path: str
    current_index: int
    created_at: datetime
    updated_at: datetime
