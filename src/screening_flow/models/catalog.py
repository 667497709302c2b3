"""Catalog model — a published, versioned questionnaire definition.

A catalog is an ordered list of questions plus the branching rules that
act on them.  Question order defines the default traversal and the
progress denominator.  Catalogs are immutable once loaded; a catalog whose
rules reference unknown question ids is rejected at load time.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .outcome import OutcomeLogic
from .question import Question
from .rule import Rule


class Catalog(BaseModel):
    """Questions + rules for one drug program's screener version."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str
    title: str
    description: Optional[str] = None
    questions: List[Question]
    rules: List[Rule] = []
    outcome_logic: OutcomeLogic = OutcomeLogic()
    disclaimers: List[str] = []

    @model_validator(mode="after")
    def _chk_references(self):
        seen: set[str] = set()
        for q in self.questions:
            if q.id in seen:
                raise ValueError(f"catalog {self.id}: duplicate question id '{q.id}'")
            seen.add(q.id)

        for rule in self.rules:
            if rule.question_id not in seen:
                raise ValueError(
                    f"catalog {self.id}: rule references unknown question '{rule.question_id}'"
                )
            if rule.target_question_id is not None and rule.target_question_id not in seen:
                raise ValueError(
                    f"catalog {self.id}: rule target '{rule.target_question_id}' "
                    f"is not a question in this catalog"
                )

        for outcome_rule in self.outcome_logic.rules:
            for cond in outcome_rule.when:
                if cond.question_id not in seen:
                    raise ValueError(
                        f"catalog {self.id}: outcome condition references unknown "
                        f"question '{cond.question_id}'"
                    )
        return self

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def index_of(self, question_id: str) -> int | None:
        """Position of a question in catalog order, or None if unknown."""
        for i, q in enumerate(self.questions):
            if q.id == question_id:
                return i
        return None

    def get_question(self, question_id: str) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def question_at(self, index: int) -> Question | None:
        if index < 0 or index >= len(self.questions):
            return None
        return self.questions[index]

    def mapped_questions(self) -> list[Question]:
        """Questions that can be resolved through the external fast path."""
        return [q for q in self.questions if q.external_mapping is not None]
