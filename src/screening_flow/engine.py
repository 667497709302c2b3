"""ScreeningEngine — the main orchestrator for a screening session.

Stateless engine pattern: each call loads the session row from the
database, computes the next step, persists changes, and returns the
result.  The caller passes an ``AsyncSession`` and owns the transaction;
the engine only flushes.

The one exception is the fast path.  An external-record lookup spans
several requests (start, authorize, confirm), so in-flight attempts are
kept in an in-process registry keyed by (user_id, session_id).  Nothing in
the registry is ever written to the session until the user accepts it.
A settled attempt leaves the registry when the session moves on, or once
it has been settled for longer than the retention period.

Flow::

    create_session ─► get_current_step ─► submit_answer ─┬─► QuestionStep (next)
                                             ▲           └─► CompletionStep (submitted)
                                             └── step_back

    start_fast_path ─► [authorize] ─► wait_fast_path ─► confirm_fast_path(accept)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.models.enums import SessionPath, SessionStatus
from screening_db.models.session import ScreeningSession
from screening_db.repository import SessionRepository

from screening_flow.constants import FAST_PATH_RETENTION_SECONDS, FAST_PATH_TIMEOUT_SECONDS
from screening_flow.fast_path import Clock, FastPathCoordinator
from screening_flow.interfaces import CatalogSource, ExternalDataSource, OutcomeEvaluator
from screening_flow.models.answer import stored_value, to_answer
from screening_flow.models.catalog import Catalog
from screening_flow.models.fast_path import FastPathContext, FastPathState
from screening_flow.models.outcome import Evaluation
from screening_flow.models.question import (
    ChoiceQuestion,
    DiagnosticTestQuestion,
    NumericQuestion,
    Question,
)
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
from screening_flow.navigation import NavigationEngine
from screening_flow.progress import ProgressTracker
from screening_flow.validator import AnswerValidator, is_empty

logger = logging.getLogger(__name__)

# How long cancel_fast_path waits for the attempt to settle
_SETTLE_SECONDS = 1.0


class SubmissionError(Exception):
    """The outcome evaluator failed.  The session keeps its answers and can be resubmitted."""


@dataclass
class _FastPathAttempt:
    coordinator: FastPathCoordinator
    task: asyncio.Task | None = None
    # Monotonic time at which the attempt was first seen settled
    settled_at: float | None = None


class ScreeningEngine:
    """Orchestrates screening sessions for every published catalog.

    Args:
        catalogs: where catalogs come from (usually a loaded CatalogStore)
        evaluator: maps a submitted answer set to an outcome
        data_source: external record source for the fast path; the fast
            path is disabled when None
        clock: timeout scheduler for fast-path attempts
        fast_path_timeout: seconds to wait for external authorization
        fast_path_retention: seconds a settled attempt stays in the
            registry when the session does not move on
    """

    def __init__(
        self,
        catalogs: CatalogSource,
        evaluator: OutcomeEvaluator,
        *,
        data_source: ExternalDataSource | None = None,
        clock: Clock | None = None,
        fast_path_timeout: float = FAST_PATH_TIMEOUT_SECONDS,
        fast_path_retention: float = FAST_PATH_RETENTION_SECONDS,
    ) -> None:
        self._catalogs = catalogs
        self._outcomes = evaluator
        self._data_source = data_source
        self._clock = clock
        self._fast_path_timeout = fast_path_timeout
        self._fast_path_retention = fast_path_retention
        self._repo = SessionRepository()
        self._fast_paths: dict[tuple[str, str], _FastPathAttempt] = {}

    @property
    def fast_path_enabled(self) -> bool:
        return self._data_source is not None

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def create_session(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        session_id: str,
        program_id: str,
    ) -> SessionInfo:
        """Create a new screening session for ``program_id``.

        The session starts at the first visible question of the program's
        current catalog.  The caller must ``await db.commit()`` to persist.

        Raises:
            KeyError: unknown program
            ValueError: the (user_id, session_id) pair is taken
        """
        catalog = self._catalogs.load_catalog(program_id)
        existing = await self._repo.get_by_user_and_session(db, user_id, session_id)
        if existing is not None:
            raise ValueError(f"Session already exists: user_id={user_id}, session_id={session_id}")

        first = NavigationEngine(catalog, {}).first_index()
        row = await self._repo.create_session(
            db,
            user_id=user_id,
            session_id=session_id,
            program_id=program_id,
            catalog_version=catalog.version,
            current_index=first or 0,
        )
        logger.info("Created session %s/%s for program %s", user_id, session_id, program_id)
        return self._to_session_info(row)

    async def get_session(
        self, db: AsyncSession, *, user_id: str, session_id: str
    ) -> SessionInfo | None:
        """Fetch session info by (user_id, session_id).  Returns None if not found."""
        row = await self._repo.get_by_user_and_session(db, user_id, session_id)
        if row is None:
            return None
        return self._to_session_info(row)

    async def list_sessions(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        program_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SessionInfo]:
        """List sessions for a user, most recent first."""
        rows = await self._repo.list_by_user(
            db, user_id, program_id=program_id, limit=limit, offset=offset,
        )
        return [self._to_session_info(r) for r in rows]

    # ==================================================================
    # Step API
    # ==================================================================

    async def get_current_step(
        self, db: AsyncSession, *, user_id: str, session_id: str
    ) -> StepResult:
        """Return the current question, or the completion result once submitted.

        Read-only.
        """
        row, catalog = await self._load(db, user_id, session_id)
        if row.status == SessionStatus.COMPLETED:
            return self._completion_step(row)
        return self._question_step(row, catalog, dict(row.answers), self._nav_state(row, catalog))

    async def submit_answer(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        session_id: str,
        qid: str | None = None,
        value: Any,
    ) -> StepResult:
        """Answer the current question and advance.

        ``qid`` defaults to the current question; passing a different one is
        an error.  An invalid value records nothing and returns the same
        question with ``error`` set.  When no visible question follows, the
        session is submitted and a :class:`CompletionStep` is returned.
        """
        row, catalog = await self._load(db, user_id, session_id)
        self._require_open(row)

        answers = dict(row.answers)
        state = self._nav_state(row, catalog)
        question = catalog.question_at(state.current_index)
        if question is None:
            raise ValueError(
                f"Session {session_id} has no current question (index={state.current_index})"
            )
        if qid is not None and qid != question.id:
            raise ValueError(f"Question {qid} is not the current question ({question.id})")

        result = AnswerValidator(catalog).validate_question(question, value)
        if not result.is_valid:
            return self._question_step(row, catalog, answers, state, error=result.reason)

        # Optional questions left blank are recorded as None
        stored = None if is_empty(value) else stored_value(to_answer(question, value))
        answers[question.id] = stored
        await self._repo.record_answers(db, row, {question.id: stored})
        self._forget_settled(user_id, session_id)

        new_state = NavigationEngine(catalog, answers).advance(state)
        await self._repo.save_navigation(
            db, row, current_index=new_state.current_index, history=new_state.history,
        )
        if new_state.is_complete:
            return await self._submit(db, row, catalog)
        return self._question_step(row, catalog, answers, new_state)

    async def step_back(
        self, db: AsyncSession, *, user_id: str, session_id: str
    ) -> StepResult:
        """Return to the previously answered question.

        A no-op on the first question.  Answers are kept so the UI can
        pre-fill them.
        """
        row, catalog = await self._load(db, user_id, session_id)
        self._require_open(row)

        answers = dict(row.answers)
        state = self._nav_state(row, catalog)
        new_state = NavigationEngine(catalog, answers).back(state)
        if new_state is not state:
            await self._repo.save_navigation(
                db, row, current_index=new_state.current_index, history=new_state.history,
            )
            self._forget_settled(user_id, session_id)
        return self._question_step(row, catalog, answers, new_state)

    async def get_progress(
        self, db: AsyncSession, *, user_id: str, session_id: str
    ) -> ProgressInfo:
        row, catalog = await self._load(db, user_id, session_id)
        return ProgressTracker(catalog, dict(row.answers)).snapshot()

    async def submit(
        self, db: AsyncSession, *, user_id: str, session_id: str
    ) -> CompletionStep:
        """Submit the session's answers for evaluation.

        Idempotent: an already-submitted session returns its stored
        evaluation without calling the evaluator again.

        Raises:
            SubmissionError: the evaluator failed; answers are untouched
        """
        row, catalog = await self._load(db, user_id, session_id, for_update=True)
        return await self._submit(db, row, catalog)

    # ==================================================================
    # Fast path
    # ==================================================================

    async def start_fast_path(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        session_id: str,
        qid: str | None = None,
    ) -> FastPathStep:
        """Start an external-record lookup for ``qid`` (default: current question).

        Returns once the connect URL is known, or the attempt has already
        failed.  The rest of the attempt runs in the background.
        """
        if self._data_source is None:
            raise ValueError("Fast path is not configured")

        row, catalog = await self._load(db, user_id, session_id)
        self._require_open(row)

        if qid is None:
            question = catalog.question_at(self._nav_state(row, catalog).current_index)
            if question is None:
                raise ValueError(f"Session {session_id} has no current question")
            qid = question.id

        self._sweep_fast_paths()
        key = (user_id, session_id)
        previous = self._fast_paths.get(key)
        if previous is not None and not previous.coordinator.is_terminal:
            raise ValueError(f"Fast path already in progress for session {session_id}")

        coordinator = FastPathCoordinator(
            catalog,
            FastPathContext(
                user_id=user_id, session_id=session_id, program_id=row.program_id, question_id=qid,
            ),
            self._data_source,
            clock=self._clock,
            timeout=self._fast_path_timeout,
        )
        attempt = _FastPathAttempt(coordinator=coordinator)
        self._fast_paths[key] = attempt
        attempt.task = asyncio.create_task(coordinator.run())

        await coordinator.wait_connected()
        logger.info("Fast path started for %s/%s on %s", user_id, session_id, qid)
        return coordinator.step()

    async def wait_fast_path(
        self, *, user_id: str, session_id: str, timeout: float | None = None
    ) -> FastPathStep:
        """Wait until the current attempt settles (or ``timeout`` elapses)."""
        attempt = self._attempt(user_id, session_id)
        if attempt.task is not None and not attempt.task.done():
            await asyncio.wait({attempt.task}, timeout=timeout)
        return attempt.coordinator.step()

    def get_fast_path(self, *, user_id: str, session_id: str) -> FastPathStep:
        return self._attempt(user_id, session_id).coordinator.step()

    def deliver_fast_path_message(self, *, user_id: str, session_id: str, message: Any) -> bool:
        """Post a message from the external window.  True if it resolved the attempt."""
        return self._attempt(user_id, session_id).coordinator.channel.post_message(message)

    def notify_fast_path_closed(self, *, user_id: str, session_id: str) -> bool:
        return self._attempt(user_id, session_id).coordinator.channel.notify_closed()

    async def cancel_fast_path(self, *, user_id: str, session_id: str) -> FastPathStep:
        attempt = self._attempt(user_id, session_id)
        attempt.coordinator.cancel()
        if attempt.task is not None and not attempt.task.done():
            await asyncio.wait({attempt.task}, timeout=_SETTLE_SECONDS)
        return attempt.coordinator.step()

    async def choose_manual_entry(
        self, db: AsyncSession, *, user_id: str, session_id: str
    ) -> QuestionStep:
        """Decline the fast path for the current question and answer by hand."""
        row, catalog = await self._load(db, user_id, session_id)
        self._require_open(row)
        state = self._nav_state(row, catalog)
        question = catalog.question_at(state.current_index)

        key = (user_id, session_id)
        previous = self._fast_paths.get(key)
        if previous is not None and not previous.coordinator.is_terminal:
            await self.cancel_fast_path(user_id=user_id, session_id=session_id)
        self._sweep_fast_paths()

        if question is not None and question.external_mapping is not None and self._data_source:
            coordinator = FastPathCoordinator(
                catalog,
                FastPathContext(
                    user_id=user_id, session_id=session_id,
                    program_id=row.program_id, question_id=question.id,
                ),
                self._data_source,
                clock=self._clock,
                timeout=self._fast_path_timeout,
            )
            coordinator.choose_manual()
            self._fast_paths[key] = _FastPathAttempt(coordinator=coordinator)

        return self._question_step(row, catalog, dict(row.answers), state)

    async def confirm_fast_path(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        session_id: str,
        accept: bool,
    ) -> StepResult:
        """Accept or reject the value the fast path found.

        Accepting records the value plus any bulk-filled answers.  If that
        leaves no required question unanswered the session is submitted
        immediately.  Rejecting writes nothing.
        """
        attempt = self._attempt(user_id, session_id)
        coordinator = attempt.coordinator
        if coordinator.state != FastPathState.CONFIRMING:
            raise ValueError(
                f"Cannot confirm fast path in state {coordinator.state.value}"
            )

        row, catalog = await self._load(db, user_id, session_id, for_update=True)
        self._require_open(row)
        answers = dict(row.answers)
        state = self._nav_state(row, catalog)

        if not accept:
            coordinator.reject()
            return self._question_step(row, catalog, answers, state)

        outcome = coordinator.accept(answers)
        answers.update(outcome.filled)
        await self._repo.record_answers(db, row, outcome.filled)
        await self._repo.set_path(db, row, SessionPath.EHR_ASSISTED)
        self._forget_settled(user_id, session_id)

        if ProgressTracker(catalog, answers).is_complete():
            logger.info("Fast path completed session %s; submitting early", session_id)
            return await self._submit(db, row, catalog)

        # The confirmed question was the one on screen: move past it
        current = catalog.question_at(state.current_index)
        if current is not None and current.id == outcome.question_id:
            state = NavigationEngine(catalog, answers).advance(state)
            await self._repo.save_navigation(
                db, row, current_index=state.current_index, history=state.history,
            )
            if state.is_complete:
                return await self._submit(db, row, catalog)
        return self._question_step(row, catalog, answers, state)

    async def close(self) -> None:
        """Cancel every in-flight fast-path attempt (call on shutdown)."""
        tasks = [a.task for a in self._fast_paths.values() if a.task and not a.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._fast_paths.clear()

    # ==================================================================
    # Internal helpers
    # ==================================================================

    async def _load(
        self, db: AsyncSession, user_id: str, session_id: str, *, for_update: bool = False
    ) -> tuple[ScreeningSession, Catalog]:
        """Load a session row and its catalog, or raise ValueError if not found."""
        row = await self._repo.get_by_user_and_session(
            db, user_id, session_id, for_update=for_update,
        )
        if row is None:
            raise ValueError(f"Session not found: user_id={user_id}, session_id={session_id}")
        catalog = self._catalogs.load_catalog(row.program_id)
        if row.catalog_version and catalog.version != row.catalog_version:
            logger.warning(
                "Session %s started on %s v%s, now serving v%s",
                session_id, row.program_id, row.catalog_version, catalog.version,
            )
        return row, catalog

    @staticmethod
    def _require_open(row: ScreeningSession) -> None:
        if row.status == SessionStatus.COMPLETED:
            raise ValueError(f"Session already completed: {row.session_id}")

    @staticmethod
    def _nav_state(row: ScreeningSession, catalog: Catalog) -> NavigationState:
        """Rebuild the navigation state from the row.

        A state is complete when the current question has already been
        passed, i.e. it sits on top of the history.
        """
        history = list(row.history or [])
        current = catalog.question_at(row.current_index)
        is_complete = bool(history) and current is not None and history[-1] == current.id
        return NavigationState(
            current_index=row.current_index, history=history, is_complete=is_complete,
        )

    def _forget_settled(self, user_id: str, session_id: str) -> None:
        """Drop the session's attempt once it has settled and the session moved on."""
        attempt = self._fast_paths.get((user_id, session_id))
        if attempt is not None and attempt.coordinator.is_terminal:
            del self._fast_paths[(user_id, session_id)]

    def _sweep_fast_paths(self) -> None:
        """Drop attempts that settled more than ``fast_path_retention`` seconds ago."""
        now = time.monotonic()
        for key, attempt in list(self._fast_paths.items()):
            if not attempt.coordinator.is_terminal:
                continue
            if attempt.settled_at is None:
                attempt.settled_at = now
            if now - attempt.settled_at >= self._fast_path_retention:
                del self._fast_paths[key]
        logger.debug("Fast-path registry holds %d attempt(s)", len(self._fast_paths))

    def _attempt(self, user_id: str, session_id: str) -> _FastPathAttempt:
        attempt = self._fast_paths.get((user_id, session_id))
        if attempt is None:
            raise ValueError(f"Fast path not found for session {session_id}")
        return attempt

    async def _submit(
        self, db: AsyncSession, row: ScreeningSession, catalog: Catalog
    ) -> CompletionStep:
        if row.status == SessionStatus.COMPLETED:
            return self._completion_step(row)

        try:
            evaluation = await self._outcomes.evaluate(catalog, dict(row.answers))
        except Exception as exc:
            logger.exception("Outcome evaluation failed for session %s", row.session_id)
            raise SubmissionError(
                f"Outcome evaluation failed for session {row.session_id}"
            ) from exc

        await self._repo.complete_session(db, row, evaluation.model_dump(mode="json"))
        self._fast_paths.pop((row.user_id, row.session_id), None)
        logger.info("Session %s submitted: %s", row.session_id, evaluation.outcome)
        return CompletionStep(evaluation=evaluation, answers=dict(row.answers))

    @staticmethod
    def _completion_step(row: ScreeningSession) -> CompletionStep:
        return CompletionStep(
            evaluation=Evaluation.model_validate(row.evaluation),
            answers=dict(row.answers),
        )

    def _question_step(
        self,
        row: ScreeningSession,
        catalog: Catalog,
        answers: dict[str, Any],
        state: NavigationState,
        *,
        error: str | None = None,
    ) -> QuestionStep:
        question = catalog.question_at(state.current_index)
        if question is None:
            raise ValueError(
                f"Session {row.session_id} has no current question (index={state.current_index})"
            )
        return QuestionStep(
            index=state.current_index,
            total=catalog.total_questions,
            question=self._question_to_payload(question, answers.get(question.id)),
            progress=ProgressTracker(catalog, answers).progress(),
            can_go_back=bool(state.history),
            fast_path_offered=self._fast_path_offered(row, question, answers),
            error=error,
        )

    def _fast_path_offered(
        self, row: ScreeningSession, question: Question, answers: dict[str, Any]
    ) -> bool:
        if self._data_source is None or question.external_mapping is None:
            return False
        if not is_empty(answers.get(question.id)):
            return False
        # Offered once per question; retrying is an explicit start_fast_path
        attempt = self._fast_paths.get((row.user_id, row.session_id))
        return attempt is None or attempt.coordinator.question_id != question.id

    @staticmethod
    def _question_to_payload(question: Question, previous: Any = None) -> QuestionPayload:
        """Convert a typed Question model to a flat QuestionPayload for the API."""
        payload = QuestionPayload(
            qid=question.id,
            text=question.text,
            question_type=question.type,
            required=question.required,
            help_text=question.help_text,
            previous_value=previous,
        )
        if isinstance(question, ChoiceQuestion):
            payload.options = list(question.options)
        elif isinstance(question, NumericQuestion):
            payload.constraints = {"min": question.min, "max": question.max}
        elif isinstance(question, DiagnosticTestQuestion):
            payload.constraints = {
                "test_type": question.test_type,
                "required_fields": list(question.required_fields),
            }
        if question.external_mapping is not None:
            payload.external_display_name = question.external_mapping.display_name
        return payload

    @staticmethod
    def _to_session_info(row: ScreeningSession) -> SessionInfo:
        """Convert an ORM row to a public SessionInfo."""
        return SessionInfo(
            user_id=row.user_id,
            session_id=row.session_id,
            program_id=row.program_id,
            catalog_version=row.catalog_version,
            status=row.status.value if isinstance(row.status, SessionStatus) else str(row.status),
            path=row.path.value if isinstance(row.path, SessionPath) else str(row.path),
            current_index=row.current_index,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
