"""Async CRUD repository for FormSessionRow.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  No funnel logic lives here: the row is an opaque
snapshot plus a few denormalised columns.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lead_funnel_db.models.session import FormSessionRow


class SessionRepository:
    """Async read/write operations on the ``form_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        funnel_id: str,
        current_step_id: str,
        snapshot: dict[str, Any],
    ) -> FormSessionRow:
        """Insert a new row.  The caller must ``await db.commit()``."""
        row = FormSessionRow(
            session_id=session_id,
            funnel_id=funnel_id,
            current_step_id=current_step_id,
            snapshot=snapshot,
        )
        db.add(row)
        await db.flush()
        return row

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_session_id(
        self, db: AsyncSession, session_id: str
    ) -> FormSessionRow | None:
        stmt = select(FormSessionRow).where(FormSessionRow.session_id == session_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(
        self, db: AsyncSession, session_id: str
    ) -> FormSessionRow | None:
        """Fetch and row-lock a session until the transaction ends.

        Concurrent mutations of the same session queue behind this lock.
        """
        stmt = (
            select(FormSessionRow)
            .where(FormSessionRow.session_id == session_id)
            .with_for_update()
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    async def save_snapshot(
        self,
        db: AsyncSession,
        row: FormSessionRow,
        *,
        current_step_id: str,
        snapshot: dict[str, Any],
    ) -> FormSessionRow:
        row.current_step_id = current_step_id
        row.snapshot = snapshot
        row.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return row

    async def delete(self, db: AsyncSession, row: FormSessionRow) -> None:
        await db.delete(row)
        await db.flush()

    async def purge_abandoned(
        self, db: AsyncSession, *, older_than_days: int
    ) -> int:
        """Delete sessions not updated for *older_than_days*.  Returns the count.

        Only in-progress sessions have rows, so every match was abandoned.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        stmt = delete(FormSessionRow).where(FormSessionRow.updated_at < cutoff)
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount
