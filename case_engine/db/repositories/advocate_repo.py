"""Repository for advocates and their workload counters.

Counters are only ever changed with a single relative UPDATE so that
concurrent transitions touching the same advocate cannot lose updates.
Column references on the right-hand side of SET read the pre-update
row on both PostgreSQL and SQLite, which the derived columns rely on.
"""

from sqlalchemy import CursorResult, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from case_engine.models.database import AdvocateRow
from case_engine.utils.clock import utcnow


class AdvocateRepo:
    """Async repository for advocates."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, advocate: AdvocateRow) -> AdvocateRow:
        """Insert an advocate and return it with generated fields populated."""
        now = utcnow()
        advocate.created_at = now
        advocate.updated_at = now
        self._session.add(advocate)
        await self._session.flush()
        return advocate

    async def get_by_id(self, advocate_id: str) -> AdvocateRow | None:
        """Fetch an advocate by primary key, refreshing any cached instance."""
        stmt = (
            select(AdvocateRow)
            .where(AdvocateRow.id == advocate_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_user_id(self, user_id: str) -> AdvocateRow | None:
        """Fetch the advocate profile belonging to a platform user."""
        stmt = select(AdvocateRow).where(AdvocateRow.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_available(self, *, max_case_load: int, limit: int = 500) -> list[AdvocateRow]:
        """Verified advocates who are accepting work and below the load ceiling."""
        stmt = (
            select(AdvocateRow)
            .where(
                AdvocateRow.verified.is_(True),
                AdvocateRow.accepting_cases.is_(True),
                AdvocateRow.current_case_load < max_case_load,
            )
            .order_by(AdvocateRow.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def set_accepting_cases(self, advocate_id: str, accepting: bool) -> bool:
        """Toggle availability. Returns True if the advocate exists."""
        stmt = (
            update(AdvocateRow)
            .where(AdvocateRow.id == advocate_id)
            .values(accepting_cases=accepting, updated_at=utcnow())
        )
        return await self._execute(stmt)

    async def increment_case_load(self, advocate_id: str) -> bool:
        """Atomically add one active case."""
        stmt = (
            update(AdvocateRow)
            .where(AdvocateRow.id == advocate_id)
            .values(current_case_load=AdvocateRow.current_case_load + 1, updated_at=utcnow())
        )
        return await self._execute(stmt)

    async def decrement_case_load(self, advocate_id: str) -> bool:
        """Atomically remove one active case. Returns False instead of going below zero."""
        stmt = (
            update(AdvocateRow)
            .where(AdvocateRow.id == advocate_id, AdvocateRow.current_case_load > 0)
            .values(current_case_load=AdvocateRow.current_case_load - 1, updated_at=utcnow())
        )
        return await self._execute(stmt)

    async def record_outcome(self, advocate_id: str, *, won: bool) -> bool:
        """Count a finished case and recompute the success rate in one statement.

        The rate becomes ``cases_won / total_cases`` from the counters, so a
        success rate seeded without matching counters is replaced on the
        first recorded outcome.
        """
        won_delta = 1 if won else 0
        stmt = (
            update(AdvocateRow)
            .where(AdvocateRow.id == advocate_id)
            .values(
                total_cases=AdvocateRow.total_cases + 1,
                cases_won=AdvocateRow.cases_won + won_delta,
                success_rate=(AdvocateRow.cases_won + won_delta) * 100.0 / (AdvocateRow.total_cases + 1),
                updated_at=utcnow(),
            )
        )
        return await self._execute(stmt)

    async def record_review(self, advocate_id: str, *, stars: int) -> bool:
        """Fold one review into the running average rating."""
        stmt = (
            update(AdvocateRow)
            .where(AdvocateRow.id == advocate_id)
            .values(
                rating=(AdvocateRow.rating * AdvocateRow.total_reviews + stars)
                / (AdvocateRow.total_reviews + 1),
                total_reviews=AdvocateRow.total_reviews + 1,
                updated_at=utcnow(),
            )
        )
        return await self._execute(stmt)

    async def _execute(self, stmt) -> bool:  # type: ignore[no-untyped-def]
        cursor: CursorResult[tuple[()]] = await self._session.execute(  # type: ignore[assignment]
            stmt.execution_options(synchronize_session=False)
        )
        return cursor.rowcount > 0
