"""ProgressTracker — completion percentage and required-answer checks.

The percentage counts every key in the answer map against the catalog's
question count.  Answers to questions that later became hidden still
count, so the figure can exceed 100; callers that render a progress bar
should clamp it themselves.

Completion is stricter: every required question that is currently
visible must have a non-empty answer.  Hidden questions are ignored.
"""

from __future__ import annotations

from typing import Any

from screening_flow.models.catalog import Catalog
from screening_flow.models.session import ProgressInfo
from screening_flow.navigation import NavigationEngine
from screening_flow.validator import is_empty


class ProgressTracker:
    """Progress queries over one catalog and its live answer map."""

    def __init__(
        self,
        catalog: Catalog,
        answers: dict[str, Any],
        navigation: NavigationEngine | None = None,
    ) -> None:
        self._catalog = catalog
        self._answers = answers
        self._nav = navigation or NavigationEngine(catalog, answers)

    def progress(self) -> int:
        total = self._catalog.total_questions
        if total == 0:
            return 0
        return round(len(self._answers) / total * 100)

    def unanswered_required(self) -> list[str]:
        """Required, visible, unanswered question ids in catalog order."""
        return [
            q.id
            for q in self._catalog.questions
            if q.required
            and self._nav.is_visible(q.id)
            and is_empty(self._answers.get(q.id))
        ]

    def is_complete(self) -> bool:
        return not self.unanswered_required()

    def snapshot(self) -> ProgressInfo:
        missing = self.unanswered_required()
        return ProgressInfo(
            progress=self.progress(),
            answered=len(self._answers),
            total=self._catalog.total_questions,
            is_complete=not missing,
            unanswered_required=missing,
        )
