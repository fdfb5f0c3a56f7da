"""FormSessionRow — one row per in-progress form session.

The whole ``FormSession`` lives in a single JSONB ``snapshot`` column so a
request needs exactly one row lock and one read.  ``funnel_id`` and
``current_step_id`` are duplicated out of the snapshot for operators
looking at drop-off without parsing JSON.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from lead_funnel_db.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FormSessionRow(Base):
    __tablename__ = "form_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    # Browser-side session id
    session_id: Mapped[str] = mapped_column(Text, nullable=False)
    funnel_id: Mapped[str] = mapped_column(Text, nullable=False)
    current_step_id: Mapped[str] = mapped_column(Text, nullable=False)
    # FormSession.to_snapshot() output
    snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint("session_id", name="uq_form_sessions_session_id"),
        # Abandoned-session purge scans by age
        Index("ix_form_sessions_updated_at", "updated_at"),
        Index("ix_form_sessions_funnel_step", "funnel_id", "current_step_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<FormSessionRow(session={self.session_id!r}, funnel={self.funnel_id!r}, "
            f"step={self.current_step_id!r})>"
        )
