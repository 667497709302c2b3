"""Create the screening_sessions table.

One row per screening session with JSONB answer map, navigation history
and evaluation.

Revision ID: 20261012_initial
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261012_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "screening_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("session_id", sa.Text(), nullable=False),
        sa.Column("program_id", sa.Text(), nullable=False),
        sa.Column("catalog_version", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("path", sa.String(20), nullable=False, server_default=sa.text("'manual'")),
        sa.Column("current_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("history", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("answers", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("evaluation", JSONB, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "session_id", name="uq_screening_user_session"),
        sa.CheckConstraint("current_index >= 0", name="ck_index_non_negative"),
        sa.CheckConstraint(
            "status != 'completed' OR evaluation IS NOT NULL",
            name="ck_completed_has_evaluation",
        ),
    )

    op.create_index("ix_screening_sessions_user_id", "screening_sessions", ["user_id"])
    op.create_index("ix_screening_sessions_program_id", "screening_sessions", ["program_id"])
    op.create_index("ix_screening_sessions_status", "screening_sessions", ["status"])
    op.create_index(
        "ix_screening_answers_gin", "screening_sessions", ["answers"], postgresql_using="gin",
    )
    op.create_index(
        "ix_screening_outcome",
        "screening_sessions",
        [sa.text("(evaluation->>'outcome')")],
        postgresql_where=sa.text("evaluation IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_index("ix_screening_outcome", table_name="screening_sessions")
    op.drop_index("ix_screening_answers_gin", table_name="screening_sessions")
    op.drop_index("ix_screening_sessions_status", table_name="screening_sessions")
    op.drop_index("ix_screening_sessions_program_id", table_name="screening_sessions")
    op.drop_index("ix_screening_sessions_user_id", table_name="screening_sessions")
    op.drop_table("screening_sessions")
