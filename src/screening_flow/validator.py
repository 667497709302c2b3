"""AnswerValidator — checks a proposed answer against its question.

Validation never raises: every outcome is a :data:`ValidationResult`,
either :class:`Ok` or :class:`Invalid` carrying a short reason suitable
for showing next to the input field.  Validation is pure, so calling it
twice on the same input gives the same result.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Literal, Union

from pydantic import BaseModel

from screening_flow.models.catalog import Catalog
from screening_flow.models.question import (
    BooleanQuestion,
    ChoiceQuestion,
    DiagnosticTestQuestion,
    NumericQuestion,
    Question,
    TextQuestion,
)

logger = logging.getLogger(__name__)

# camelCase keys accepted on diagnostic_test answers, by snake_case name
_DIAGNOSTIC_ALIASES = {
    "has_test": "hasTest",
    "test_name": "testName",
    "test_date": "testDate",
    "result": "result",
    "upload_url": "uploadUrl",
}


class Ok(BaseModel):
    kind: Literal["ok"] = "ok"

    @property
    def is_valid(self) -> bool:
        return True


class Invalid(BaseModel):
    kind: Literal["invalid"] = "invalid"
    reason: str

    @property
    def is_valid(self) -> bool:
        return False


ValidationResult = Union[Ok, Invalid]

_OK = Ok()

# diagnostic_test detail fields that hold free text
_DIAGNOSTIC_TEXT_FIELDS = ("test_name", "test_date", "upload_url")


def is_empty(value: Any) -> bool:
    """True for None, blank strings and empty containers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def as_number(value: Any) -> float | None:
    """Parse a finite number from a number or numeric string; booleans are not numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        num = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(num):
        return None
    return num


def _fmt_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


class AnswerValidator:
    """Validates answers for the questions of one catalog."""

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def validate(self, question_id: str, value: Any) -> ValidationResult:
        question = self._catalog.get_question(question_id)
        if question is None:
            return Invalid(reason="question not found")
        return self.validate_question(question, value)

    def validate_question(self, question: Question, value: Any) -> ValidationResult:
        """Validate ``value`` for an already-resolved question."""
        if is_empty(value):
            return Invalid(reason="required") if question.required else _OK

        if isinstance(question, NumericQuestion):
            return self._validate_numeric(question, value)
        if isinstance(question, ChoiceQuestion):
            if value not in question.options:
                return Invalid(reason="must be one of the listed options")
            return _OK
        if isinstance(question, BooleanQuestion):
            if not isinstance(value, bool):
                return Invalid(reason="must be true or false")
            return _OK
        if isinstance(question, TextQuestion):
            return self._validate_text(question, value)
        if isinstance(question, DiagnosticTestQuestion):
            return self._validate_diagnostic(question, value)

        logger.warning("No validation for question type: %s", question.type)
        return _OK

    @staticmethod
    def _validate_numeric(question: NumericQuestion, value: Any) -> ValidationResult:
        num = as_number(value)
        if num is None:
            return Invalid(reason="must be a number")
        if question.min is not None and num < question.min:
            return Invalid(reason=f"must be at least {_fmt_bound(question.min)}")
        if question.max is not None and num > question.max:
            return Invalid(reason=f"must be at most {_fmt_bound(question.max)}")
        return _OK

    @staticmethod
    def _validate_text(question: TextQuestion, value: Any) -> ValidationResult:
        if not isinstance(value, str):
            return Invalid(reason="must be text")
        if question.pattern is not None:
            try:
                matched = re.fullmatch(question.pattern, value.strip()) is not None
            except re.error:
                logger.warning("Invalid pattern on question %s", question.id)
                return _OK
            if not matched:
                return Invalid(reason="has an invalid format")
        return _OK

    @staticmethod
    def _validate_diagnostic(question: DiagnosticTestQuestion, value: Any) -> ValidationResult:
        if not isinstance(value, dict):
            return Invalid(reason="must be a test result object")

        flags = _diagnostic_values(value, "has_test")
        if not flags or not all(isinstance(v, bool) for v in flags) or len(set(flags)) > 1:
            return Invalid(reason="has_test must be true or false")
        has_test = flags[0]

        for field in _DIAGNOSTIC_TEXT_FIELDS:
            if any(not isinstance(v, str) for v in _diagnostic_values(value, field)):
                return Invalid(reason=f"{field} must be text")
        for result in _diagnostic_values(value, "result"):
            if not isinstance(result, str) and as_number(result) is None:
                return Invalid(reason="result must be text or a number")

        if has_test:
            for field in question.required_fields:
                if is_empty(_diagnostic_field(value, field)):
                    return Invalid(reason=f"{field} is required")
        return _OK


def _diagnostic_field(value: dict, field: str) -> Any:
    if field in value:
        return value[field]
    return value.get(_DIAGNOSTIC_ALIASES.get(field, field))


def _diagnostic_values(value: dict, field: str) -> list[Any]:
    """Non-null values given for ``field`` under either of its key spellings."""
    keys = dict.fromkeys((field, _DIAGNOSTIC_ALIASES.get(field, field)))
    return [value[k] for k in keys if value.get(k) is not None]
