"""Advocate workload and track-record bookkeeping.

The ledger never opens its own transaction: it runs on the session of
the transition that caused the change, so counters commit or roll back
together with the status write.
"""

from __future__ import annotations

import structlog
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession

from case_engine.core.exceptions import NotFoundError
from case_engine.db.repositories import AdvocateRepo

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

LEDGER_UNDERFLOWS = Counter(
    "case_load_underflow_prevented_total",
    "Decrements skipped because the advocate's case load was already zero",
)


class WorkloadLedger:
    """Atomic counter updates for one advocate at a time."""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = AdvocateRepo(session)

    async def increment(self, provider_id: str) -> None:
        if not await self._repo.increment_case_load(provider_id):
            raise NotFoundError(f"Advocate {provider_id} not found", details={"advocate_id": provider_id})
        logger.debug("case_load_incremented", advocate_id=provider_id)

    async def decrement(self, provider_id: str) -> None:
        if await self._repo.decrement_case_load(provider_id):
            logger.debug("case_load_decremented", advocate_id=provider_id)
            return
        # Either the advocate is gone or the load is already zero; neither
        # should fail the transition that triggered the decrement.
        LEDGER_UNDERFLOWS.inc()
        logger.warning("case_load_underflow_prevented", advocate_id=provider_id)

    async def apply(self, provider_id: str, delta: int) -> None:
        """Apply a workload delta of -1, 0 or +1."""
        if delta > 0:
            await self.increment(provider_id)
        elif delta < 0:
            await self.decrement(provider_id)

    async def record_outcome(self, provider_id: str, *, won: bool) -> None:
        if not await self._repo.record_outcome(provider_id, won=won):
            raise NotFoundError(f"Advocate {provider_id} not found", details={"advocate_id": provider_id})
        logger.info("advocate_outcome_recorded", advocate_id=provider_id, won=won)

    async def record_review(self, provider_id: str, *, stars: int) -> None:
        if not await self._repo.record_review(provider_id, stars=stars):
            raise NotFoundError(f"Advocate {provider_id} not found", details={"advocate_id": provider_id})
        logger.info("advocate_review_recorded", advocate_id=provider_id, stars=stars)
