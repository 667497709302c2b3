"""Question type models for screening catalogs.

Each question type maps to a specific answer shape and validation rule:

    - boolean: yes/no, answered with ``True`` / ``False``
    - numeric: a finite number, optionally bounded by ``min`` / ``max``
    - choice: one of an ordered list of ``options``
    - text: free text, optionally constrained by a regex ``pattern``
    - diagnostic_test: a structured sub-object (``has_test`` plus details)

Any question may carry an ``external_mapping`` that lets the fast path
resolve its answer from an external health record instead of manual entry.

The discriminated ``Question`` union uses ``type`` as its discriminator.
The ``question_mapper`` dict maps type strings to their Pydantic classes.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExternalMapping(BaseModel):
    """How to resolve a question from the external data source.

    ``path`` is a dotted resource path (e.g. ``Observation.ldl``,
    ``Condition.diabetes``).  ``rule`` tells the UI whether connecting the
    external source is optional or mandatory for this question.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str = Field(alias="fhir_path")
    rule: Literal["optional", "mandatory"] = "optional"
    display_name: Optional[str] = None


# --- Base question type ---

class BaseQuestion(BaseModel):
    """Fields shared by all question types."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    help_text: Optional[str] = None
    required: bool = True
    external_mapping: Optional[ExternalMapping] = None

    @property
    def has_external_mapping(self) -> bool:
        return self.external_mapping is not None


# --- Concrete question types ---

class BooleanQuestion(BaseQuestion):
    """Yes/no question."""

    type: Literal["boolean"] = "boolean"


class NumericQuestion(BaseQuestion):
    """Numeric input with optional inclusive bounds."""

    type: Literal["numeric"] = "numeric"
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"question {self.id}: min must be <= max")
        return self


class ChoiceQuestion(BaseQuestion):
    """Pick exactly one of the ordered options."""

    type: Literal["choice"] = "choice"
    options: List[str]

    @model_validator(mode="after")
    def _chk(self):
        if not self.options:
            raise ValueError(f"question {self.id}: choice question needs options")
        return self


class TextQuestion(BaseQuestion):
    """Free text input."""

    type: Literal["text"] = "text"
    pattern: Optional[str] = None


class DiagnosticTestQuestion(BaseQuestion):
    """Asks whether the patient has recent test results, plus the details.

    The answer is a structured object (see ``DiagnosticTestResult``).
    ``required_fields`` lists the detail fields that must be filled in when
    the patient says they have a test.
    """

    type: Literal["diagnostic_test"] = "diagnostic_test"
    test_type: Optional[str] = None
    required_fields: List[Literal["test_name", "test_date", "result", "upload_url"]] = []


# --- Discriminated union of all question types ---

Question = Annotated[
    Union[
        BooleanQuestion,
        NumericQuestion,
        ChoiceQuestion,
        TextQuestion,
        DiagnosticTestQuestion,
    ],
    Field(discriminator="type"),
]

# Maps type string → Pydantic class for dynamic deserialization from YAML.
question_mapper = {
    "boolean": BooleanQuestion,
    "numeric": NumericQuestion,
    "choice": ChoiceQuestion,
    "text": TextQuestion,
    "diagnostic_test": DiagnosticTestQuestion,
}
