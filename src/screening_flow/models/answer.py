"""Typed answer models.

Answers arrive as loosely typed JSON values (from the UI or from the
external record payload).  Once validated they are converted into a
tagged ``Answer`` keyed by the question type, so downstream code never has
to guess what shape an answer has.  The answer map persisted on the
session holds ``stored_value(answer)``, the JSON form of the typed answer.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .question import Question


class DiagnosticTestResult(BaseModel):
    """Structured answer to a ``diagnostic_test`` question.

    Accepts both snake_case and the camelCase keys used by web clients.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    has_test: bool = Field(alias="hasTest")
    test_name: Optional[str] = Field(default=None, alias="testName")
    test_date: Optional[str] = Field(default=None, alias="testDate")
    # Lab values arrive as numbers from some record sources
    result: Optional[Union[int, float, str]] = None
    upload_url: Optional[str] = Field(default=None, alias="uploadUrl")


class BooleanAnswer(BaseModel):
    type: Literal["boolean"] = "boolean"
    value: bool


class NumericAnswer(BaseModel):
    type: Literal["numeric"] = "numeric"
    value: float


class ChoiceAnswer(BaseModel):
    type: Literal["choice"] = "choice"
    value: str


class TextAnswer(BaseModel):
    type: Literal["text"] = "text"
    value: str


class DiagnosticTestAnswer(BaseModel):
    type: Literal["diagnostic_test"] = "diagnostic_test"
    value: DiagnosticTestResult


Answer = Annotated[
    Union[BooleanAnswer, NumericAnswer, ChoiceAnswer, TextAnswer, DiagnosticTestAnswer],
    Field(discriminator="type"),
]


def to_answer(question: Question, value: Any) -> Answer:
    """Build the typed answer for ``question`` from a raw (validated) value.

    Raises ``ValueError`` if the value cannot be represented — callers run
    the validator first, so this only fires on programming errors.
    """
    qt = question.type
    if qt == "boolean":
        return BooleanAnswer(value=value)
    if qt == "numeric":
        return NumericAnswer(value=float(value))
    if qt == "choice":
        return ChoiceAnswer(value=value)
    if qt == "text":
        return TextAnswer(value=str(value))
    if qt == "diagnostic_test":
        return DiagnosticTestAnswer(value=DiagnosticTestResult.model_validate(value))
    raise ValueError(f"Unsupported question type: {qt}")


def stored_value(answer: Answer) -> Any:
    """JSON-serialisable form of a typed answer, as kept in the answer map."""
    if isinstance(answer, DiagnosticTestAnswer):
        return answer.value.model_dump(exclude_none=True)
    if isinstance(answer, NumericAnswer) and answer.value.is_integer():
        # Keep whole numbers as ints so stored answers read naturally
        return int(answer.value)
    return answer.value
