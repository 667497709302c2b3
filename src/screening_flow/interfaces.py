"""Abstract interfaces for the collaborators the screening engine depends on.

The engine never talks to storage, evaluators or external record systems
directly; it goes through these ABCs so deployments can plug in their own
implementations.  The SDK ships one implementation of each:

  - :class:`screening_flow.catalog.CatalogStore` (YAML catalogs on disk)
  - :class:`screening_flow.outcome.RuleBasedOutcomeEvaluator`
  - ``screening_server.fast_path.CallbackDataSource`` (HTTP callback flow)

Typical integration flow::

    engine = ScreeningEngine(store, evaluator, data_source=source)
    step = await engine.start_fast_path(db, user_id=..., session_id=...)
    # ... the user authorizes at step.connect_url; the external side
    #     posts its payload into the channel ...
    step = await engine.wait_fast_path(user_id=..., session_id=...)
    step = await engine.confirm_fast_path(db, user_id=..., session_id=..., accept=True)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from screening_flow.models.catalog import Catalog
from screening_flow.models.fast_path import FastPathContext
from screening_flow.models.outcome import Evaluation

if TYPE_CHECKING:
    from screening_flow.fast_path import AuthorizationChannel


class CatalogSource(ABC):
    """Provides published catalogs by program id."""

    @abstractmethod
    def load_catalog(self, program_id: str) -> Catalog:
        """Return the current catalog for ``program_id``.

        Raises
        ------
        KeyError
            If no catalog is published for the program.
        """
        ...


class OutcomeEvaluator(ABC):
    """Maps a final answer set to a clinical outcome.

    The engine calls this exactly once per successful submission.  Any
    exception is treated as a submission failure; the session keeps its
    answers and may be submitted again.
    """

    @abstractmethod
    async def evaluate(self, catalog: Catalog, answers: dict[str, Any]) -> Evaluation:
        """Evaluate the submitted answers.

        Parameters
        ----------
        catalog:
            The catalog the session was answered against.
        answers:
            Final answer map, keyed by question id.

        Returns
        -------
        Evaluation
            Outcome, reason and recommended actions.
        """
        ...


class ExternalDataSource(ABC):
    """External health-record system used by the fast path.

    An implementation starts an authorization flow for one attempt and
    arranges for the authorized payload to be posted into ``channel``
    (or for the channel to be told the flow was abandoned).
    """

    @abstractmethod
    async def request_authorization(
        self, context: FastPathContext, channel: "AuthorizationChannel"
    ) -> str | None:
        """Begin authorization for ``context``.

        Returns
        -------
        str | None
            URL the user should open to authorize, or None when the source
            needs no user interaction.

        Raises
        ------
        Exception
            Any error (blocked window, network failure) ends the attempt
            as failed.
        """
        ...

    async def release(self, context: FastPathContext) -> None:
        """Drop any per-attempt state.  Called once the attempt resolves."""
        return None

