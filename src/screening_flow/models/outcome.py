"""Outcome models — the result of evaluating a final answer set.

``OutcomeLogic`` is the declarative part of a catalog that maps answers to
one of three clinical outcomes.  Rules are checked in order; the first rule
whose conditions all hold decides the outcome.  When nothing matches, the
``default_outcome`` applies.

``Evaluation`` is what the outcome evaluator returns to the engine and what
API callers receive once a session is submitted.
"""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, computed_field

Outcome = Literal["ok_to_use", "ask_a_doctor", "do_not_use"]


class Condition(BaseModel):
    """A single comparison against a prior answer.

    Operators:
      - eq, ne: equality / inequality
      - lt, le, gt, ge: numeric comparisons
      - between: value is [min, max] inclusive
      - contains, not_contains: substring / element membership
      - contains_any, contains_all: set membership
      - matches: regex match

    ``field`` drills into structured answers (e.g. ``has_test`` of a
    diagnostic_test answer).
    """

    question_id: str
    field: Optional[str] = None
    op: Literal[
        "eq", "ne", "contains", "not_contains", "matches",
        "contains_any", "contains_all",
        "lt", "le", "gt", "ge", "between",
    ]
    value: Any


class OutcomeRule(BaseModel):
    """If ALL conditions in ``when`` hold, the session gets ``outcome``."""

    when: List[Condition]
    outcome: Outcome
    message: Optional[str] = None
    recommended_actions: List[str] = []


class OutcomeLogic(BaseModel):
    rules: List[OutcomeRule] = []
    default_outcome: Outcome = "ok_to_use"
    default_message: Optional[str] = None


class Evaluation(BaseModel):
    """Final screening result for a submitted answer set."""

    outcome: Outcome
    reason: str
    recommended_actions: List[str] = []
    # Missing required answers detected by the evaluator (safest outcome used)
    missing_required: List[str] = []

    @computed_field
    @property
    def eligible_for_code(self) -> bool:
        """Only ``ok_to_use`` sessions may be issued a purchase-verification code."""
        return self.outcome == "ok_to_use"
