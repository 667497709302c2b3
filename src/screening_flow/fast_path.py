"""FastPathCoordinator — fill answers from an external health record.

For a question with an ``external_mapping`` the user may choose to pull
the answer from their health record instead of typing it.  One
coordinator drives one such attempt:

    offered -> connecting -> awaiting_authorization -> resolving
            -> confirming -> accepted | rejected
    (any pre-confirmation state) -> failed
    offered -> manual

The external system reports back through an :class:`AuthorizationChannel`.
The channel resolves exactly once: an authorized message, the user
closing the window, the timeout or a cancellation, whichever comes first.
Everything after the first resolution is ignored.

Nothing extracted is written anywhere until the user accepts it.  On
acceptance the same payload is also used to bulk-fill every other
required, still-unanswered question that maps into the record.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Protocol

from screening_flow.constants import (
    AUTH_SUCCESS_MESSAGE_TYPE,
    FAST_PATH_FALLBACK_MESSAGE,
    FAST_PATH_TIMEOUT_SECONDS,
)
from screening_flow.extraction import resolve
from screening_flow.interfaces import ExternalDataSource
from screening_flow.models.answer import stored_value, to_answer
from screening_flow.models.catalog import Catalog
from screening_flow.models.fast_path import (
    TERMINAL_STATES,
    FastPathContext,
    FastPathOutcome,
    FastPathState,
    Found,
)
from screening_flow.models.question import Question
from screening_flow.models.session import FastPathStep
from screening_flow.validator import AnswerValidator, is_empty

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(ABC):
    """Schedules the authorization timeout.  Injected so tests control time."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        ...


class LoopClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


# ---------------------------------------------------------------------------
# Authorization channel
# ---------------------------------------------------------------------------

class Resolution(str, enum.Enum):
    AUTHORIZED = "authorized"
    CLOSED = "closed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AuthorizationChannel:
    """Single-resolution channel between the external flow and a coordinator.

    Exactly one of :meth:`post_message`, :meth:`notify_closed`,
    :meth:`expire` or :meth:`cancel` takes effect; each returns True only
    if it was the one that resolved the channel.  Listeners registered with
    :meth:`subscribe` are called once on resolution and then detached.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._resolution: Resolution | None = None
        self._payload: dict[str, Any] | None = None
        self._listeners: list[Callable[[Resolution], Any]] = []

    @property
    def resolution(self) -> Resolution | None:
        return self._resolution

    @property
    def payload(self) -> dict[str, Any] | None:
        """Authorized data, present only when resolved as AUTHORIZED."""
        return self._payload

    @property
    def is_resolved(self) -> bool:
        return self._resolution is not None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[Resolution], Any]) -> Callable[[], None]:
        """Register a resolution listener; returns a function that detaches it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def detach_all(self) -> None:
        self._listeners.clear()

    # --- resolving calls ---

    def post_message(self, message: Any) -> bool:
        """Deliver a message from the external window.

        Only ``{"type": "EHR_AUTH_SUCCESS", "data": {...}}`` counts; any
        other message is ignored and leaves the channel open.
        """
        if self.is_resolved:
            return False
        if not isinstance(message, dict) or message.get("type") != AUTH_SUCCESS_MESSAGE_TYPE:
            logger.debug("Ignoring unrelated channel message")
            return False
        data = message.get("data")
        return self._resolve(Resolution.AUTHORIZED, data if isinstance(data, dict) else {})

    def notify_closed(self) -> bool:
        return self._resolve(Resolution.CLOSED)

    def expire(self) -> bool:
        return self._resolve(Resolution.EXPIRED)

    def cancel(self) -> bool:
        return self._resolve(Resolution.CANCELLED)

    async def wait(self) -> Resolution:
        await self._event.wait()
        return self._resolution

    def _resolve(self, resolution: Resolution, payload: dict | None = None) -> bool:
        if self.is_resolved:
            return False
        self._resolution = resolution
        self._payload = payload
        self._event.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(resolution)
            except Exception:
                logger.exception("Channel listener failed")
        return True


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class FastPathCoordinator:
    """Drives one fast-path attempt for one question of one session.

    Args:
        catalog: the session's catalog
        context: identifies the session and the triggering question
        source: the external data source to authorize against
        clock: timeout scheduler (defaults to the running event loop)
        timeout: seconds to wait for authorization
    """

    def __init__(
        self,
        catalog: Catalog,
        context: FastPathContext,
        source: ExternalDataSource,
        *,
        clock: Clock | None = None,
        timeout: float = FAST_PATH_TIMEOUT_SECONDS,
    ) -> None:
        question = catalog.get_question(context.question_id)
        if question is None or question.external_mapping is None:
            raise ValueError(
                f"Question {context.question_id} has no external mapping in catalog {catalog.id}"
            )
        self._catalog = catalog
        self._question: Question = question
        self._context = context
        self._source = source
        self._clock = clock or LoopClock()
        self._timeout = timeout
        self._validator = AnswerValidator(catalog)

        self.channel = AuthorizationChannel()
        self.state = FastPathState.OFFERED
        self.connect_url: str | None = None
        self.value: Any = None
        self.message: str | None = None
        self._payload: dict[str, Any] | None = None
        # Set once the attempt leaves CONNECTING (URL known or failed)
        self._connected = asyncio.Event()

    @property
    def context(self) -> FastPathContext:
        return self._context

    @property
    def question_id(self) -> str:
        return self._question.id

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def step(self) -> FastPathStep:
        return FastPathStep(
            qid=self._question.id,
            state=self.state,
            connect_url=self.connect_url,
            value=self.value,
            message=self.message,
        )

    # ------------------------------------------------------------------
    # Running the attempt
    # ------------------------------------------------------------------

    async def run(self) -> FastPathState:
        """Authorize, wait for the channel, and resolve the question's value.

        Returns the state the attempt settled in: CONFIRMING on success,
        FAILED otherwise.
        """
        if self.state != FastPathState.OFFERED:
            raise ValueError(f"Fast path already started (state={self.state.value})")

        self.state = FastPathState.CONNECTING
        timer: TimerHandle | None = None
        try:
            try:
                self.connect_url = await self._source.request_authorization(
                    self._context, self.channel,
                )
            except Exception as exc:
                logger.warning(
                    "Authorization request failed for %s/%s: %s",
                    self._context.session_id, self._question.id, exc,
                )
                self._fail()
                return self.state
            finally:
                self._connected.set()

            self.state = FastPathState.AWAITING_AUTHORIZATION
            timer = self._clock.call_later(self._timeout, self.channel.expire)

            resolution = await self.channel.wait()
            if resolution != Resolution.AUTHORIZED:
                logger.info(
                    "Fast path for %s/%s ended: %s",
                    self._context.session_id, self._question.id, resolution.value,
                )
                self._fail()
                return self.state

            self.state = FastPathState.RESOLVING
            self._payload = self.channel.payload or {}
            value = self._resolve_value(self._question)
            if value is None:
                self._payload = None
                self._fail()
                return self.state

            self.value = value
            self.state = FastPathState.CONFIRMING
            return self.state
        except asyncio.CancelledError:
            self.channel.cancel()
            self._fail()
            raise
        except Exception:
            logger.exception(
                "Fast path for %s/%s failed in state %s",
                self._context.session_id, self._question.id, self.state.value,
            )
            self._payload = None
            self._fail()
            return self.state
        finally:
            if timer is not None:
                timer.cancel()
            self.channel.detach_all()
            try:
                await self._source.release(self._context)
            except Exception:
                logger.exception("Failed to release external source for %s", self._context.session_id)

    async def wait_connected(self) -> None:
        """Block until the connect URL is known (or the attempt failed)."""
        await self._connected.wait()

    def _resolve_value(self, question: Question) -> Any | None:
        """Extract and normalise a value for ``question``; None if unusable."""
        try:
            result = resolve(question, self._payload)
            if not isinstance(result, Found):
                return None
            if not self._validator.validate_question(question, result.value).is_valid:
                logger.info("External value for %s failed validation, ignoring", question.id)
                return None
            return stored_value(to_answer(question, result.value))
        except Exception as exc:
            logger.warning(
                "Could not normalise external value for %s/%s: %s",
                self._context.session_id, question.id, exc,
            )
            return None

    def _fail(self) -> None:
        self.state = FastPathState.FAILED
        self.value = None
        self.message = FAST_PATH_FALLBACK_MESSAGE

    # ------------------------------------------------------------------
    # User decisions
    # ------------------------------------------------------------------

    def accept(self, answers: dict[str, Any]) -> FastPathOutcome:
        """Confirm the extracted value and bulk-fill from the same payload.

        ``answers`` is the current answer map; it is read, never mutated.
        """
        if self.state != FastPathState.CONFIRMING:
            raise ValueError(f"Cannot accept fast path in state {self.state.value}")

        filled: dict[str, Any] = {self._question.id: self.value}
        for q in self._catalog.mapped_questions():
            if q.id == self._question.id or not q.required:
                continue
            if not is_empty(answers.get(q.id)):
                continue
            value = self._resolve_value(q)
            if value is not None:
                filled[q.id] = value

        self.state = FastPathState.ACCEPTED
        self._payload = None
        logger.info(
            "Fast path accepted for %s: %d answer(s) filled",
            self._context.session_id, len(filled),
        )
        return FastPathOutcome(question_id=self._question.id, filled=filled)

    def reject(self) -> None:
        if self.state != FastPathState.CONFIRMING:
            raise ValueError(f"Cannot reject fast path in state {self.state.value}")
        self.state = FastPathState.REJECTED
        self.value = None
        self._payload = None

    def choose_manual(self) -> None:
        if self.state != FastPathState.OFFERED:
            raise ValueError(f"Cannot switch to manual entry in state {self.state.value}")
        self.state = FastPathState.MANUAL

    def cancel(self) -> bool:
        """Abandon the attempt.  Returns False if it had already settled."""
        if self.is_terminal:
            return False
        if self.state == FastPathState.OFFERED:
            self._fail()
            return True
        if self.state == FastPathState.CONFIRMING:
            self.reject()
            return True
        # connecting / awaiting / resolving: run() observes the cancellation
        return self.channel.cancel()
