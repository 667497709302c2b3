"""Fast-path models — states and results of an external-record lookup."""

import enum
from typing import Any, Literal, Union

from pydantic import BaseModel


class FastPathState(str, enum.Enum):
    """Lifecycle of one fast-path attempt for one question.

    Transitions:
        offered -> manual                     (user prefers manual entry)
        offered -> connecting -> awaiting_authorization -> resolving
        resolving -> confirming               (value found)
        resolving -> failed                   (nothing found)
        awaiting_authorization -> failed      (closed, timed out, cancelled)
        confirming -> accepted | rejected
    """

    OFFERED = "offered"
    CONNECTING = "connecting"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    RESOLVING = "resolving"
    CONFIRMING = "confirming"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"
    MANUAL = "manual"


TERMINAL_STATES = frozenset(
    {FastPathState.ACCEPTED, FastPathState.REJECTED, FastPathState.FAILED, FastPathState.MANUAL}
)


class Found(BaseModel):
    """The external payload yielded a value for ``question_id``."""

    kind: Literal["found"] = "found"
    question_id: str
    value: Any


class NotFound(BaseModel):
    kind: Literal["not_found"] = "not_found"
    question_id: str


FetchResult = Union[Found, NotFound]


class FastPathOutcome(BaseModel):
    """Answers produced by an accepted fast path.

    ``filled`` holds the triggering question's value plus every other
    question that was bulk-filled from the same payload.
    """

    question_id: str
    filled: dict[str, Any]

    @property
    def bulk_filled(self) -> list[str]:
        return [qid for qid in self.filled if qid != self.question_id]


class FastPathContext(BaseModel):
    """Identifies one fast-path attempt: which session, which question."""

    user_id: str
    session_id: str
    program_id: str
    question_id: str
