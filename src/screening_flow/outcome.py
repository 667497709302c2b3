"""RuleBasedOutcomeEvaluator — evaluates a catalog's declarative ``outcome_logic``.

Evaluation order:

  1. Any required, visible question without an answer → ``ask_a_doctor``
     (an incomplete answer set is never cleared for use).
  2. ``outcome_logic.rules`` in declaration order; the first rule whose
     conditions all hold decides the outcome.
  3. Otherwise ``outcome_logic.default_outcome``.
"""

from __future__ import annotations

import logging
from typing import Any

from screening_flow.constants import OUTCOME_SUMMARIES, SAFE_OUTCOME
from screening_flow.evaluator import RuleEvaluator
from screening_flow.interfaces import OutcomeEvaluator
from screening_flow.models.catalog import Catalog
from screening_flow.models.outcome import Evaluation
from screening_flow.progress import ProgressTracker

logger = logging.getLogger(__name__)


class RuleBasedOutcomeEvaluator(OutcomeEvaluator):
    """Default :class:`OutcomeEvaluator` backed by the catalog's outcome rules."""

    def __init__(self, evaluator: RuleEvaluator | None = None) -> None:
        self._evaluator = evaluator or RuleEvaluator()

    async def evaluate(self, catalog: Catalog, answers: dict[str, Any]) -> Evaluation:
        missing = ProgressTracker(catalog, answers).unanswered_required()
        if missing:
            logger.info(
                "Catalog %s evaluated with %d missing required answer(s)",
                catalog.id, len(missing),
            )
            return Evaluation(
                outcome=SAFE_OUTCOME,
                reason="Some required questions were not answered.",
                missing_required=missing,
            )

        logic = catalog.outcome_logic
        for rule in logic.rules:
            if all(self._evaluator.eval_condition(c, answers) for c in rule.when):
                return Evaluation(
                    outcome=rule.outcome,
                    reason=rule.message or OUTCOME_SUMMARIES[rule.outcome],
                    recommended_actions=list(rule.recommended_actions),
                )

        return Evaluation(
            outcome=logic.default_outcome,
            reason=logic.default_message or OUTCOME_SUMMARIES[logic.default_outcome],
        )
