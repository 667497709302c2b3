"""RuleEvaluator — pure predicate evaluation over the answer map.

Two kinds of predicates are evaluated here:

  - **branching rules** (``Rule``) that drive navigation: equals,
    not_equals, greater_than, less_than
  - **outcome conditions** (``Condition``) used by the outcome evaluator:
    the richer operator set of the catalog's ``outcome_logic``

Both fail closed: an unanswered trigger question, a non-numeric operand
for a numeric comparison, or an unknown operator all evaluate to False.
Nothing in this module raises on bad data.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from screening_flow.models.outcome import Condition
from screening_flow.models.rule import Rule

logger = logging.getLogger(__name__)


def _strict_equals(answer: Any, value: Any) -> bool:
    """Type-aware equality: booleans never equal numbers, strings never equal numbers."""
    if isinstance(answer, bool) != isinstance(value, bool):
        return False
    return answer == value


def _to_number(value: Any) -> float | None:
    """Coerce to a finite float, or None if the value is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num):
        return None
    return num


class RuleEvaluator:
    """Evaluates rules and outcome conditions against an answer map."""

    # ------------------------------------------------------------------
    # Branching rules
    # ------------------------------------------------------------------

    def evaluate(self, rule: Rule, answers: dict[str, Any]) -> bool:
        """Return True if ``rule`` is triggered by the current answers.

        An unanswered trigger question makes the rule inert (False).
        """
        answer = answers.get(rule.question_id)
        if answer is None:
            return False

        op = rule.operator
        if op == "equals":
            return _strict_equals(answer, rule.value)
        if op == "not_equals":
            return not _strict_equals(answer, rule.value)

        if op in ("greater_than", "less_than"):
            ans_num = _to_number(answer)
            val_num = _to_number(rule.value)
            if ans_num is None or val_num is None:
                return False
            if op == "greater_than":
                return ans_num > val_num
            return ans_num < val_num

        logger.warning("Unknown rule operator '%s' on question %s", op, rule.question_id)
        return False

    # ------------------------------------------------------------------
    # Outcome conditions
    # ------------------------------------------------------------------

    def eval_condition(self, cond: Condition, answers: dict[str, Any]) -> bool:
        """Evaluate a single outcome condition against the answers dict.

        If the referenced question has not been answered, the condition
        evaluates to False (the outcome rule won't match).
        """
        answer = answers.get(cond.question_id)
        if answer is None:
            return False

        # Drill into structured answers (diagnostic_test sub-fields)
        if cond.field is not None:
            if isinstance(answer, dict):
                answer = answer.get(cond.field)
            else:
                return False
            if answer is None:
                return False

        return self._compare(cond.op, answer, cond.value)

    @staticmethod
    def _compare(op: str, answer: Any, value: Any) -> bool:
        """Apply an operator to an answer and an expected value.

        Numeric operators coerce both sides to float (answers from YAML or
        user input may be strings).
        """
        if op == "eq":
            return _strict_equals(answer, value)

        if op == "ne":
            return not _strict_equals(answer, value)

        # --- Numeric comparisons ---
        if op in ("lt", "le", "gt", "ge", "between"):
            ans_num = _to_number(answer)
            if ans_num is None:
                return False

            if op == "between":
                # value is expected to be [min, max]
                try:
                    lo, hi = _to_number(value[0]), _to_number(value[1])
                except (TypeError, IndexError, KeyError):
                    return False
                if lo is None or hi is None:
                    return False
                return lo <= ans_num <= hi

            val_num = _to_number(value)
            if val_num is None:
                return False
            if op == "lt":
                return ans_num < val_num
            if op == "le":
                return ans_num <= val_num
            if op == "gt":
                return ans_num > val_num
            return ans_num >= val_num

        # --- Collection / string membership ---
        if op == "contains":
            if isinstance(answer, list):
                return value in answer
            return str(value) in str(answer)

        if op == "not_contains":
            if isinstance(answer, list):
                return value not in answer
            return str(value) not in str(answer)

        if op == "contains_any":
            if isinstance(answer, list):
                return any(v in answer for v in value)
            ans_str = str(answer)
            return any(str(v) in ans_str for v in value)

        if op == "contains_all":
            if isinstance(answer, list):
                return all(v in answer for v in value)
            ans_str = str(answer)
            return all(str(v) in ans_str for v in value)

        if op == "matches":
            return bool(re.search(str(value), str(answer)))

        logger.warning("Unknown condition operator: %s", op)
        return False
