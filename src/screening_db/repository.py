"""Async CRUD repository for ScreeningSession.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  Methods flush but never commit.

The repository holds no screening logic; navigation and validation live in
``screening_flow``.  Structural invariants (a completed session carries
its evaluation) are enforced by DB constraints.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from screening_db.models.enums import SessionPath, SessionStatus
from screening_db.models.session import ScreeningSession


class SessionRepository:
    """Async read/write operations on the ``screening_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        session_id: str,
        program_id: str,
        catalog_version: str | None = None,
        current_index: int = 0,
    ) -> ScreeningSession:
        """Insert a new session row and return it.

        The caller must ``await db.commit()`` to persist.
        """
        now = datetime.now(timezone.utc)
        session = ScreeningSession(
            user_id=user_id,
            session_id=session_id,
            program_id=program_id,
            catalog_version=catalog_version,
            status=SessionStatus.CREATED,
            path=SessionPath.MANUAL,
            current_index=current_index,
            history=[],
            answers={},
            created_at=now,
            updated_at=now,
        )
        db.add(session)
        await db.flush()  # Populate server-side defaults
        return session

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_user_and_session(
        self,
        db: AsyncSession,
        user_id: str,
        session_id: str,
        *,
        for_update: bool = False,
    ) -> ScreeningSession | None:
        """Fetch a session by the unique (user_id, session_id) pair.

        ``for_update`` takes a row lock so concurrent submissions of the
        same session serialize.
        """
        stmt = select(ScreeningSession).where(
            ScreeningSession.user_id == user_id,
            ScreeningSession.session_id == session_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        program_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ScreeningSession]:
        """List sessions for a user, most recent first."""
        stmt = select(ScreeningSession).where(ScreeningSession.user_id == user_id)
        if program_id is not None:
            stmt = stmt.where(ScreeningSession.program_id == program_id)
        stmt = stmt.order_by(ScreeningSession.created_at.desc()).limit(limit).offset(offset)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def record_answers(
        self,
        db: AsyncSession,
        session: ScreeningSession,
        answers: dict[str, Any],
    ) -> ScreeningSession:
        """Merge ``answers`` into the answer map (latest write wins).

        Also moves a ``created`` session to ``in_progress``.
        """
        # New dict so SQLAlchemy detects the JSONB mutation
        session.answers = {**session.answers, **answers}
        if session.status == SessionStatus.CREATED:
            session.status = SessionStatus.IN_PROGRESS
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def save_navigation(
        self,
        db: AsyncSession,
        session: ScreeningSession,
        *,
        current_index: int,
        history: list[str],
    ) -> ScreeningSession:
        session.current_index = current_index
        session.history = list(history)
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def set_path(
        self, db: AsyncSession, session: ScreeningSession, path: SessionPath
    ) -> ScreeningSession:
        session.path = path
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def complete_session(
        self,
        db: AsyncSession,
        session: ScreeningSession,
        evaluation: dict[str, Any],
    ) -> ScreeningSession:
        """Mark a session as completed with its evaluation payload.

        The CHECK constraint ``ck_completed_has_evaluation`` enforces that
        ``evaluation`` is non-null whenever status is completed.
        """
        now = datetime.now(timezone.utc)
        session.status = SessionStatus.COMPLETED
        session.evaluation = evaluation
        session.completed_at = now
        session.updated_at = now
        await db.flush()
        return session
