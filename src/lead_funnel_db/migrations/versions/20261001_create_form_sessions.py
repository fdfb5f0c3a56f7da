"""Create form_sessions table.

Revision ID: 20261001_form_sessions
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261001_form_sessions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "form_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("session_id", sa.Text, nullable=False),
        sa.Column("funnel_id", sa.Text, nullable=False),
        sa.Column("current_step_id", sa.Text, nullable=False),
        sa.Column("snapshot", JSONB, nullable=False),
        sa.Column(
            "created_at",
            TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("session_id", name="uq_form_sessions_session_id"),
    )
    op.create_index("ix_form_sessions_updated_at", "form_sessions", ["updated_at"])
    op.create_index(
        "ix_form_sessions_funnel_step", "form_sessions", ["funnel_id", "current_step_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_form_sessions_funnel_step", table_name="form_sessions")
    op.drop_index("ix_form_sessions_updated_at", table_name="form_sessions")
    op.drop_table("form_sessions")
