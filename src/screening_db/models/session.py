"""ScreeningSession ORM model — single row per screening session.

Each row holds everything needed to resume a screening: the catalog it was
started against, the answer map, the navigation history and, once
submitted, the evaluation.  The JSONB columns keep it to one row per
session so the engine can load and replay it without JOINs.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from screening_db.models.base import Base
from screening_db.models.enums import SessionPath, SessionStatus


class ScreeningSession(Base):
    """One row per screening session.

    A user may screen for several programs over time; each session is
    uniquely identified by the (user_id, session_id) pair.
    """

    __tablename__ = "screening_sessions"

    # --- Primary key ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Identity ---
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # Caller-supplied session identifier, unique within a user
    session_id: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Catalog ---
    program_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # Version the answers were collected against
    catalog_version: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Lifecycle ---
    status: Mapped[SessionStatus] = mapped_column(
        # Store the lowercase value, not the Python name
        String(20),
        nullable=False,
        default=SessionStatus.CREATED,
        index=True,
    )
    path: Mapped[SessionPath] = mapped_column(
        String(20),
        nullable=False,
        default=SessionPath.MANUAL,
        server_default=text("'manual'"),
    )

    # --- Navigation ---
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Question ids already passed, most recent last
    history: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )

    # --- Answers ---
    # Flat answer map: {qid: value}.  Latest write wins.
    answers: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )

    # --- Result ---
    # Written exactly once when status transitions to "completed".
    # Shape: {"outcome": "...", "reason": "...", "recommended_actions": [...], ...}
    evaluation: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "session_id", name="uq_screening_user_session"),
        CheckConstraint("current_index >= 0", name="ck_index_non_negative"),
        # Completed sessions must carry their evaluation
        CheckConstraint(
            "status != 'completed' OR evaluation IS NOT NULL",
            name="ck_completed_has_evaluation",
        ),
        # GIN index for answer lookups (reporting queries)
        Index("ix_screening_answers_gin", "answers", postgresql_using="gin"),
        Index(
            "ix_screening_outcome",
            text("(evaluation->>'outcome')"),
            postgresql_where=text("evaluation IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScreeningSession(id={self.id!s}, user={self.user_id!r}, "
            f"session={self.session_id!r}, program={self.program_id!r}, "
            f"status={self.status!r}, index={self.current_index})>"
        )
