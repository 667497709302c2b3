"""NavigationEngine — decides which question comes next.

Traversal follows catalog order, modified by two kinds of rules that are
triggered by answers already given:

  - ``skip_to`` jumps forward to a target question after the trigger is
    answered
  - ``hide`` suppresses a target question while the rule holds

Visibility is recomputed from the live answer map on every call, so
changing an earlier answer can hide or reveal later questions.  Nothing
here raises for inconsistent catalogs or out-of-range indexes; those
degrade to "no skip" or "end of questionnaire" with a logged warning.

Usage::

    nav = NavigationEngine(catalog, answers)
    state = NavigationState(current_index=nav.first_index() or 0)
    state = nav.advance(state)      # after recording an answer
    state = nav.back(state)         # undo the last advance
"""

from __future__ import annotations

import logging
from typing import Any

from screening_flow.evaluator import RuleEvaluator
from screening_flow.models.catalog import Catalog
from screening_flow.models.rule import Rule
from screening_flow.models.session import NavigationState

logger = logging.getLogger(__name__)


class NavigationEngine:
    """Computes next/previous positions for one catalog and answer map.

    Args:
        catalog: the loaded questionnaire
        answers: the live answer map (read on every call, never mutated)
        evaluator: rule evaluator; a fresh :class:`RuleEvaluator` by default
    """

    def __init__(
        self,
        catalog: Catalog,
        answers: dict[str, Any],
        evaluator: RuleEvaluator | None = None,
    ) -> None:
        self._catalog = catalog
        self._answers = answers
        self._evaluator = evaluator or RuleEvaluator()

    # ------------------------------------------------------------------
    # Rule queries
    # ------------------------------------------------------------------

    def applicable_rules(self, question_id: str) -> list[Rule]:
        """Rules triggered by ``question_id`` that currently hold, in declaration order."""
        return [
            rule
            for rule in self._catalog.rules
            if rule.question_id == question_id
            and self._evaluator.evaluate(rule, self._answers)
        ]

    def is_visible(self, question_id: str) -> bool:
        """A question is hidden iff some ``hide`` rule targeting it holds."""
        for rule in self._catalog.rules:
            if rule.action != "hide" or rule.target_question_id != question_id:
                continue
            if self._evaluator.evaluate(rule, self._answers):
                return False
        return True

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def first_index(self) -> int | None:
        """Index of the first visible question, or None if there is none."""
        return self._first_visible_from(0)

    def next_index(self, current: int) -> int | None:
        """Index of the next visible question after ``current``.

        Returns None when the questionnaire is exhausted.
        """
        total = self._catalog.total_questions
        if current < 0:
            return self.first_index()
        if current >= total:
            return None

        candidate = current + 1
        question = self._catalog.questions[current]
        skip = self._skip_target(question.id, current)
        if skip is not None:
            candidate = skip

        return self._first_visible_from(candidate)

    def _skip_target(self, question_id: str, current: int) -> int | None:
        """Resolve the first applicable skip_to rule for ``question_id``.

        Only the first declared skip_to rule that holds is considered.  A
        target that is unknown, or not strictly after ``current``, is
        treated as no skip.
        """
        for rule in self.applicable_rules(question_id):
            if rule.action != "skip_to":
                continue
            target = self._catalog.index_of(rule.target_question_id)
            if target is None:
                logger.warning(
                    "skip_to target %s on %s does not resolve, ignoring",
                    rule.target_question_id, question_id,
                )
                return None
            if target <= current:
                logger.warning(
                    "skip_to target %s on %s points backwards, ignoring",
                    rule.target_question_id, question_id,
                )
                return None
            return target
        return None

    def _first_visible_from(self, start: int) -> int | None:
        for idx in range(start, self._catalog.total_questions):
            if self.is_visible(self._catalog.questions[idx].id):
                return idx
        return None

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def advance(self, state: NavigationState) -> NavigationState:
        """Move past the current question.

        The current question id is pushed onto the history.  When no
        visible question follows, the state is marked complete and the
        index stays where it is.
        """
        if state.is_complete:
            return state

        question = self._catalog.question_at(state.current_index)
        if question is None:
            logger.warning(
                "advance from out-of-range index %d in catalog %s",
                state.current_index, self._catalog.id,
            )
            return state.model_copy(update={"is_complete": True})

        history = [*state.history, question.id]
        nxt = self.next_index(state.current_index)
        if nxt is None:
            return NavigationState(
                current_index=state.current_index, history=history, is_complete=True,
            )
        return NavigationState(current_index=nxt, history=history, is_complete=False)

    def back(self, state: NavigationState) -> NavigationState:
        """Return to the most recently passed question.

        Empty history is a no-op.  Stepping back from a completed state
        re-opens it.
        """
        if not state.history:
            return state

        history = list(state.history)
        previous_id = history.pop()
        idx = self._catalog.index_of(previous_id)
        if idx is None:
            # History entry from another catalog version; fall back one slot
            logger.warning("history entry %s not in catalog %s", previous_id, self._catalog.id)
            idx = state.current_index - 1
        return NavigationState(current_index=max(idx, 0), history=history, is_complete=False)
