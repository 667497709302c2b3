"""Branching rule models for screening catalogs.

A rule is triggered by the answer to one question (``question_id``) and
acts on another:

  - hide: suppress ``target_question_id`` while the rule holds
  - skip_to: after answering the trigger, jump to ``target_question_id``
  - show: accepted for compatibility with published catalogs; inert

Rules are evaluated by :class:`screening_flow.evaluator.RuleEvaluator`.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator

RuleOperator = Literal["equals", "not_equals", "greater_than", "less_than"]
RuleAction = Literal["show", "hide", "skip_to"]


class Rule(BaseModel):
    """If the answer to ``question_id`` satisfies ``operator value``, apply ``action``."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    # Plain str so an unknown operator in a published catalog degrades to
    # "never triggers" instead of failing the whole catalog.
    operator: str
    value: Any = None
    action: RuleAction
    target_question_id: Optional[str] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.action in ("skip_to", "hide") and not self.target_question_id:
            raise ValueError(
                f"rule on {self.question_id}: action '{self.action}' needs target_question_id"
            )
        return self
