"""Repository for cases and their audit timeline.

Status writes are conditional on the status and version the caller read
(optimistic concurrency): a False return means somebody else moved the
case first and the caller must re-read. Timeline rows are insert-only.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import CursorResult, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from case_engine.models.database import CaseRow, TimelineRow
from case_engine.utils.clock import utcnow


class CaseRepo:
    """Async repository for cases."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, case: CaseRow) -> CaseRow:
        """Insert a case and return it with generated fields populated."""
        self._session.add(case)
        await self._session.flush()
        return case

    async def get_by_id(self, case_id: str) -> CaseRow | None:
        """Fetch a case (and its timeline) by primary key, bypassing stale identity-map state."""
        stmt = (
            select(CaseRow)
            .where(CaseRow.id == case_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def transition(
        self,
        case_id: str,
        *,
        expected_status: str,
        expected_version: int,
        values: dict[str, Any],
        require_unclaimed: bool = False,
    ) -> bool:
        """Apply ``values`` only if the case is still where the caller saw it.

        Bumps ``version`` and ``last_transition_at`` along with the change.
        Returns True if the row was updated.
        """
        now = utcnow()
        stmt = (
            update(CaseRow)
            .where(
                CaseRow.id == case_id,
                CaseRow.status == expected_status,
                CaseRow.version == expected_version,
            )
            .values(
                version=CaseRow.version + 1,
                last_transition_at=now,
                updated_at=now,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if require_unclaimed:
            stmt = stmt.where(CaseRow.advocate_id.is_(None))
        cursor: CursorResult[tuple[()]] = await self._session.execute(stmt)  # type: ignore[assignment]
        return cursor.rowcount > 0

    async def update_analysis(
        self,
        case_id: str,
        *,
        expected_version: int,
        values: dict[str, Any],
    ) -> bool:
        """Overwrite derived analysis fields without changing status."""
        stmt = (
            update(CaseRow)
            .where(CaseRow.id == case_id, CaseRow.version == expected_version)
            .values(version=CaseRow.version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        cursor: CursorResult[tuple[()]] = await self._session.execute(stmt)  # type: ignore[assignment]
        return cursor.rowcount > 0

    async def bump_version(self, case_id: str, *, expected_version: int) -> bool:
        """Advance the version only; the row lock orders concurrent writers on the case."""
        return await self.update_analysis(case_id, expected_version=expected_version, values={})

    async def add_timeline_entry(
        self,
        case_id: str,
        *,
        event: str,
        description: str = "",
        actor_id: str | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
    ) -> TimelineRow:
        """Append an audit entry for a case."""
        entry = TimelineRow(
            case_id=case_id,
            event=event,
            description=description,
            actor_id=actor_id,
            from_status=from_status,
            to_status=to_status,
            created_at=utcnow(),
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def latest_transition(self, case_id: str) -> TimelineRow | None:
        """Most recent timeline entry that recorded a status change."""
        stmt = (
            select(TimelineRow)
            .where(TimelineRow.case_id == case_id, TimelineRow.to_status.is_not(None))
            .order_by(TimelineRow.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_in_status_since(
        self,
        status: str,
        *,
        before: datetime,
        limit: int = 100,
    ) -> list[CaseRow]:
        """Cases that have been in ``status`` since before ``before``, oldest first."""
        stmt = (
            select(CaseRow)
            .where(CaseRow.status == status, CaseRow.last_transition_at < before)
            .order_by(CaseRow.last_transition_at.asc(), CaseRow.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def has_event(self, case_id: str, event: str) -> bool:
        """Whether the case timeline already contains an ``event`` entry."""
        stmt = (
            select(TimelineRow.id)
            .where(TimelineRow.case_id == case_id, TimelineRow.event == event)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
