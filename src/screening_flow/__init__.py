"""screening_flow — screening questionnaire SDK.

Public API:
    ScreeningEngine          — async orchestrator for screening sessions
    SubmissionError          — raised when outcome evaluation fails
    CatalogStore             — loads YAML program catalogs into typed models
    RuleEvaluator            — evaluates branching rules and outcome conditions
    NavigationEngine         — next/previous question with skip and hide rules
    AnswerValidator          — checks answers against their question
    ProgressTracker          — progress percentage and required-answer checks
    FastPathCoordinator      — one external-record lookup attempt
    AuthorizationChannel     — single-resolution channel for that attempt
    RuleBasedOutcomeEvaluator — evaluates a catalog's outcome_logic

Interfaces:
    CatalogSource        — provides catalogs by program id
    OutcomeEvaluator     — maps an answer set to an outcome
    ExternalDataSource   — external health-record authorization

Step models:
    QuestionStep / FastPathStep / CompletionStep — union ``StepResult``
    SessionInfo, ProgressInfo, QuestionPayload
"""

from screening_flow.catalog import CatalogStore
from screening_flow.engine import ScreeningEngine, SubmissionError
from screening_flow.evaluator import RuleEvaluator
from screening_flow.fast_path import (
    AuthorizationChannel,
    Clock,
    FastPathCoordinator,
    LoopClock,
)
from screening_flow.interfaces import CatalogSource, ExternalDataSource, OutcomeEvaluator
from screening_flow.models.session import (
    CompletionStep,
    FastPathStep,
    ProgressInfo,
    QuestionPayload,
    QuestionStep,
    SessionInfo,
    StepResult,
)
from screening_flow.navigation import NavigationEngine
from screening_flow.outcome import RuleBasedOutcomeEvaluator
from screening_flow.progress import ProgressTracker
from screening_flow.validator import AnswerValidator, Invalid, Ok, ValidationResult

__all__ = [
    # Engine & store
    "ScreeningEngine",
    "SubmissionError",
    "CatalogStore",
    # Components
    "RuleEvaluator",
    "NavigationEngine",
    "AnswerValidator",
    "Ok",
    "Invalid",
    "ValidationResult",
    "ProgressTracker",
    "FastPathCoordinator",
    "AuthorizationChannel",
    "Clock",
    "LoopClock",
    "RuleBasedOutcomeEvaluator",
    # Interfaces
    "CatalogSource",
    "OutcomeEvaluator",
    "ExternalDataSource",
    # Session / step
    "CompletionStep",
    "FastPathStep",
    "ProgressInfo",
    "QuestionPayload",
    "QuestionStep",
    "SessionInfo",
    "StepResult",
]
