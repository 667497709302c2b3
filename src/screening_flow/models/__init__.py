"""Public model re-exports for screening_flow.

Consumers should import from ``screening_flow.models`` rather than
reaching into sub-modules directly.
"""

# --- Questions & rules ---
from screening_flow.models.question import (
    BaseQuestion,
    BooleanQuestion,
    ChoiceQuestion,
    DiagnosticTestQuestion,
    ExternalMapping,
    NumericQuestion,
    Question,
    TextQuestion,
    question_mapper,
)
from screening_flow.models.rule import Rule

# --- Catalog ---
from screening_flow.models.catalog import Catalog

# --- Answers ---
from screening_flow.models.answer import (
    Answer,
    BooleanAnswer,
    ChoiceAnswer,
    DiagnosticTestAnswer,
    DiagnosticTestResult,
    NumericAnswer,
    TextAnswer,
    stored_value,
    to_answer,
)

# --- Outcome ---
from screening_flow.models.outcome import (
    Condition,
    Evaluation,
    Outcome,
    OutcomeLogic,
    OutcomeRule,
)

# --- Fast path ---
from screening_flow.models.fast_path import (
    FastPathContext,
    FastPathOutcome,
    FastPathState,
    FetchResult,
    Found,
    NotFound,
)

# --- Session / step ---
from screening_flow.models.session import (
    CompletionStep,
    FastPathStep,
    NavigationState,
    ProgressInfo,
    QuestionPayload,
    QuestionStep,
    SessionInfo,
    StepResult,
)

__all__ = [
    # Questions
    "BaseQuestion",
    "BooleanQuestion",
    "ChoiceQuestion",
    "DiagnosticTestQuestion",
    "ExternalMapping",
    "NumericQuestion",
    "Question",
    "TextQuestion",
    "question_mapper",
    "Rule",
    "Catalog",
    # Answers
    "Answer",
    "BooleanAnswer",
    "ChoiceAnswer",
    "DiagnosticTestAnswer",
    "DiagnosticTestResult",
    "NumericAnswer",
    "TextAnswer",
    "stored_value",
    "to_answer",
    # Outcome
    "Condition",
    "Evaluation",
    "Outcome",
    "OutcomeLogic",
    "OutcomeRule",
    # Fast path
    "FastPathContext",
    "FastPathOutcome",
    "FastPathState",
    "FetchResult",
    "Found",
    "NotFound",
    # Session
    "CompletionStep",
    "FastPathStep",
    "NavigationState",
    "ProgressInfo",
    "QuestionPayload",
    "QuestionStep",
    "SessionInfo",
    "StepResult",
]
