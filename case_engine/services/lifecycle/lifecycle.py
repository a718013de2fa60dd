"""Case lifecycle operations.

Every operation runs in its own transaction:

  1. read the case (and advocate, where relevant)
  2. validate the edge against the state machine
  3. write the new status conditionally on the status *and* version read
     in step 1; zero rows updated means a concurrent writer won
  4. append the timeline entry and apply workload ledger effects on the
     same session
  5. commit, then publish notifications

Replaying an operation whose effect is already the latest recorded
transition returns the case unchanged: no second timeline entry, no
second ledger effect, no second notification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from case_engine.core.exceptions import (
    AlreadyClaimed,
    InvalidTransition,
    NotClaimant,
    NotFoundError,
    ProviderUnavailable,
    StaleState,
)
from case_engine.db.repositories import AdvocateRepo, CaseRepo
from case_engine.db.session import get_session
from case_engine.models.database import AdvocateRow, CaseRow
from case_engine.models.domain import (
    CaseOutcome,
    CaseStatus,
    Classification,
    Location,
    NotificationEvent,
    NotificationType,
    OutcomeResult,
    UrgencyAssessment,
)
from case_engine.services.lifecycle.ledger import WorkloadLedger
from case_engine.services.lifecycle.state_machine import (
    CLAIM_HOLDING_STATUSES,
    OUTCOME_STATUSES,
    is_terminal,
    validate_transition,
    workload_delta,
)
from case_engine.services.notifications.publisher import NotificationPublisher, build_event
from case_engine.utils.clock import utcnow

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

CASE_TRANSITIONS = Counter(
    "case_transitions_total",
    "Committed case status transitions",
    ["from_status", "to_status"],
)
ASSIGNMENT_CONFLICTS = Counter(
    "case_assignment_conflicts_total",
    "Lifecycle operations rejected because of a competing writer or claim",
    ["kind"],
)

# Timeline event names
EVENT_SUBMITTED = "case_submitted"
EVENT_ANALYSIS_STARTED = "analysis_started"
EVENT_ANALYZED = "case_analyzed"
EVENT_STATUS_CHANGED = "status_changed"
EVENT_ADVOCATE_REQUESTED = "advocate_requested"
EVENT_ADVOCATE_ACCEPTED = "advocate_accepted"
EVENT_ADVOCATE_REJECTED = "advocate_rejected"
EVENT_COMPLETED = "case_completed"
EVENT_REANALYZED = "case_reanalyzed"
EVENT_REVIEWED = "review_submitted"


@dataclass
class _Transition:
    """A validated status change waiting to be written."""

    case: CaseRow
    from_status: CaseStatus
    to_status: CaseStatus
    event: str
    description: str
    actor_id: str | None
    values: dict[str, Any] = field(default_factory=dict)
    require_unclaimed: bool = False
    outcome: CaseOutcome | None = None


def _analysis_summary(classification: Classification, urgency: UrgencyAssessment) -> str:
    summary = (
        f"Classified as {classification.category} ({classification.confidence}% confidence), "
        f"urgency {urgency.level.value} ({urgency.score})"
    )
    if classification.suggested_category:
        summary += f"; text suggests {classification.suggested_category}"
    return summary


class CaseLifecycle:
    """Drives cases through the status graph and keeps advocate counters in step."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: NotificationPublisher,
    ) -> None:
        self._session_factory = session_factory
        self._publisher = publisher

    # ------------------------------------------------------------------
    # Creation and analysis
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        client_id: str,
        title: str,
        description: str,
        classification: Classification,
        urgency: UrgencyAssessment,
        location: Location | None = None,
        manual_category: str | None = None,
    ) -> CaseRow:
        """Persist an analysed case, ready for advocate matching."""
        now = utcnow()
        location = location or Location()
        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await repo.create(
                CaseRow(
                    client_id=client_id,
                    title=title,
                    description=description,
                    city=location.city,
                    state=location.state,
                    country=location.country,
                    manual_category=manual_category,
                    category=classification.category,
                    confidence=classification.confidence,
                    suggested_category=classification.suggested_category,
                    urgency_level=urgency.level.value,
                    urgency_score=urgency.score,
                    lexicon_version=classification.lexicon_version,
                    status=CaseStatus.PENDING_ADVOCATE.value,
                    version=1,
                    created_at=now,
                    updated_at=now,
                    last_transition_at=now,
                )
            )
            await repo.add_timeline_entry(
                case.id,
                event=EVENT_SUBMITTED,
                description="Case submitted",
                actor_id=client_id,
                to_status=CaseStatus.SUBMITTED.value,
            )
            await repo.add_timeline_entry(
                case.id,
                event=EVENT_ANALYSIS_STARTED,
                description="Automatic analysis started",
                from_status=CaseStatus.SUBMITTED.value,
                to_status=CaseStatus.ANALYZING.value,
            )
            await repo.add_timeline_entry(
                case.id,
                event=EVENT_ANALYZED,
                description=_analysis_summary(classification, urgency),
                from_status=CaseStatus.ANALYZING.value,
                to_status=CaseStatus.PENDING_ADVOCATE.value,
            )
            case_id = case.id

        logger.info(
            "case_created",
            case_id=case_id,
            category=classification.category,
            urgency_level=urgency.level,
        )
        await self._publisher.publish(
            build_event(
                client_id,
                NotificationType.CASE_SUBMITTED,
                f'Your case "{title}" was submitted and classified as {classification.category}',
                case_id,
            )
        )
        return await self.get(case_id)

    async def reanalyze(
        self,
        case_id: str,
        *,
        classification: Classification,
        urgency: UrgencyAssessment,
        actor_id: str | None,
    ) -> CaseRow:
        """Overwrite the derived category and urgency of a live case."""
        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await self._require_case(repo, case_id)
            status = CaseStatus(case.status)
            if is_terminal(status):
                raise InvalidTransition(
                    f"Case is {status.value} and cannot be re-analysed",
                    details={"case_id": case_id, "status": status.value},
                )
            updated = await repo.update_analysis(
                case_id,
                expected_version=case.version,
                values={
                    "category": classification.category,
                    "confidence": classification.confidence,
                    "suggested_category": classification.suggested_category,
                    "urgency_level": urgency.level.value,
                    "urgency_score": urgency.score,
                    "lexicon_version": classification.lexicon_version,
                },
            )
            if not updated:
                raise self._stale(case_id, expected=status)
            await repo.add_timeline_entry(
                case_id,
                event=EVENT_REANALYZED,
                description=_analysis_summary(classification, urgency),
                actor_id=actor_id,
            )

        logger.info(
            "case_reanalyzed",
            case_id=case_id,
            previous_category=case.category,
            category=classification.category,
            urgency_level=urgency.level,
        )
        return await self.get(case_id)

    # ------------------------------------------------------------------
    # Generic transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        case_id: str,
        from_expected: CaseStatus,
        to_status: CaseStatus,
        *,
        actor_id: str | None,
        note: str = "",
    ) -> CaseRow:
        """Move a case along a non-reserved edge of the status graph."""
        validate_transition(from_expected, to_status)

        events: list[NotificationEvent] = []
        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await self._require_case(repo, case_id)
            current = CaseStatus(case.status)

            if current != from_expected:
                if current == to_status and await self._is_replay(repo, case, from_expected, to_status):
                    logger.info("transition_replayed", case_id=case_id, to_status=to_status)
                    return case
                raise self._stale(case_id, expected=from_expected, actual=current)

            values: dict[str, Any] = {}
            if to_status == CaseStatus.PENDING_ADVOCATE:
                values["advocate_id"] = None

            advocate = await self._claimant(session, case)
            await self._apply(
                session,
                _Transition(
                    case=case,
                    from_status=current,
                    to_status=to_status,
                    event=EVENT_STATUS_CHANGED,
                    description=note or f"Status changed to {to_status.value}",
                    actor_id=actor_id,
                    values=values,
                ),
            )

            message = f'Case "{case.title}" is now {to_status.value.replace("_", " ")}'
            events.append(build_event(case.client_id, NotificationType.CASE_UPDATE, message, case_id))
            if advocate is not None and advocate.user_id != actor_id:
                events.append(build_event(advocate.user_id, NotificationType.CASE_UPDATE, message, case_id))

        await self._publisher.publish_all(events)
        return await self.get(case_id)

    # ------------------------------------------------------------------
    # Assignment workflow
    # ------------------------------------------------------------------

    async def request_assignment(
        self,
        case_id: str,
        provider_id: str,
        *,
        actor_id: str | None,
    ) -> CaseRow:
        """Claim a case for one advocate and ask them to accept it."""
        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await self._require_case(repo, case_id)
            current = CaseStatus(case.status)

            if case.advocate_id is not None:
                if (
                    case.advocate_id == provider_id
                    and current == CaseStatus.PENDING_ACCEPTANCE
                    and await self._is_replay(repo, case, None, CaseStatus.PENDING_ACCEPTANCE)
                ):
                    logger.info("assignment_request_replayed", case_id=case_id, advocate_id=provider_id)
                    return case
                if current in CLAIM_HOLDING_STATUSES:
                    ASSIGNMENT_CONFLICTS.labels(kind="already_claimed").inc()
                    raise AlreadyClaimed(
                        "Case already has an advocate",
                        details={"case_id": case_id, "status": current.value},
                    )

            validate_transition(current, CaseStatus.PENDING_ACCEPTANCE, allow_reserved=True)

            advocate = await AdvocateRepo(session).get_by_id(provider_id)
            if advocate is None:
                raise NotFoundError(f"Advocate {provider_id} not found", details={"advocate_id": provider_id})
            if not advocate.verified or not advocate.accepting_cases:
                raise ProviderUnavailable(
                    "Advocate is not currently accepting cases",
                    details={
                        "advocate_id": provider_id,
                        "verified": advocate.verified,
                        "accepting_cases": advocate.accepting_cases,
                    },
                )

            await self._apply(
                session,
                _Transition(
                    case=case,
                    from_status=current,
                    to_status=CaseStatus.PENDING_ACCEPTANCE,
                    event=EVENT_ADVOCATE_REQUESTED,
                    description=f"Requested {advocate.name or 'advocate'}",
                    actor_id=actor_id,
                    values={"advocate_id": provider_id},
                    require_unclaimed=True,
                ),
            )
            event = build_event(
                advocate.user_id,
                NotificationType.CASE_REQUEST,
                f'You have a new case request: "{case.title}"',
                case_id,
            )

        logger.info("assignment_requested", case_id=case_id, advocate_id=provider_id)
        await self._publisher.publish(event)
        return await self.get(case_id)

    async def respond_to_assignment(
        self,
        case_id: str,
        provider_id: str,
        *,
        accept: bool,
        actor_id: str | None,
        reason: str = "",
    ) -> CaseRow:
        """Accept or decline a pending claim on behalf of the claimant."""
        target = CaseStatus.ASSIGNED if accept else CaseStatus.PENDING_ADVOCATE

        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await self._require_case(repo, case_id)
            current = CaseStatus(case.status)

            if current != CaseStatus.PENDING_ACCEPTANCE:
                if await self._is_response_replay(repo, case, provider_id, accept, actor_id):
                    logger.info("assignment_response_replayed", case_id=case_id, accept=accept)
                    return case
                if case.advocate_id is not None and case.advocate_id != provider_id:
                    ASSIGNMENT_CONFLICTS.labels(kind="not_claimant").inc()
                    raise NotClaimant(
                        "Only the requested advocate can respond to this case",
                        details={"case_id": case_id},
                    )
                raise InvalidTransition(
                    f"Case is {current.value}, not awaiting an advocate's response",
                    details={"case_id": case_id, "from_status": current.value, "to_status": target.value},
                )

            if case.advocate_id != provider_id:
                ASSIGNMENT_CONFLICTS.labels(kind="not_claimant").inc()
                raise NotClaimant(
                    "Only the requested advocate can respond to this case",
                    details={"case_id": case_id},
                )

            advocate = await self._claimant(session, case)
            advocate_name = advocate.name if advocate is not None and advocate.name else "The advocate"
            if accept:
                values: dict[str, Any] = {"assigned_at": utcnow()}
                event_name = EVENT_ADVOCATE_ACCEPTED
                description = "Advocate accepted the case"
                notification = build_event(
                    case.client_id,
                    NotificationType.ADVOCATE_ACCEPTED,
                    f'{advocate_name} accepted your case "{case.title}"',
                    case_id,
                )
            else:
                values = {"advocate_id": None}
                event_name = EVENT_ADVOCATE_REJECTED
                description = f"Advocate declined the case: {reason}" if reason else "Advocate declined the case"
                notification = build_event(
                    case.client_id,
                    NotificationType.ADVOCATE_REJECTED,
                    f'{advocate_name} declined your case "{case.title}"',
                    case_id,
                )

            await self._apply(
                session,
                _Transition(
                    case=case,
                    from_status=current,
                    to_status=target,
                    event=event_name,
                    description=description,
                    actor_id=actor_id,
                    values=values,
                ),
            )

        logger.info("assignment_responded", case_id=case_id, advocate_id=provider_id, accept=accept)
        await self._publisher.publish(notification)
        return await self.get(case_id)

    # ------------------------------------------------------------------
    # Completion and reviews
    # ------------------------------------------------------------------

    async def complete(
        self,
        case_id: str,
        outcome: CaseOutcome,
        *,
        actor_id: str | None,
    ) -> CaseRow:
        """Finish an active case and fold the result into the advocate's record."""
        if outcome.status not in OUTCOME_STATUSES:
            raise InvalidTransition(
                f"{outcome.status.value} is not a completion status",
                details={"to_status": outcome.status.value},
            )

        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await self._require_case(repo, case_id)
            current = CaseStatus(case.status)

            if current == outcome.status and await self._is_replay(repo, case, None, outcome.status):
                logger.info("completion_replayed", case_id=case_id)
                return case

            validate_transition(current, outcome.status, allow_reserved=True)
            now = utcnow()
            await self._apply(
                session,
                _Transition(
                    case=case,
                    from_status=current,
                    to_status=outcome.status,
                    event=EVENT_COMPLETED,
                    description=outcome.description or f"Case {outcome.status.value}",
                    actor_id=actor_id,
                    values={
                        "completed_at": now,
                        "outcome_result": outcome.result.value if outcome.result else None,
                        "outcome_description": outcome.description or None,
                    },
                    outcome=outcome,
                ),
            )
            event = build_event(
                case.client_id,
                NotificationType.CASE_UPDATE,
                f'Your case "{case.title}" has been {outcome.status.value}',
                case_id,
            )

        await self._publisher.publish(event)
        return await self.get(case_id)

    async def review(
        self,
        case_id: str,
        *,
        stars: int,
        actor_id: str | None,
    ) -> AdvocateRow:
        """Record the client's rating of the advocate who handled a finished case."""
        async with get_session(self._session_factory) as session:
            repo = CaseRepo(session)
            case = await self._require_case(repo, case_id)
            status = CaseStatus(case.status)
            if status not in OUTCOME_STATUSES and status != CaseStatus.CLOSED:
                raise InvalidTransition(
                    "Only finished cases can be reviewed",
                    details={"case_id": case_id, "status": status.value},
                )
            if case.advocate_id is None:
                raise InvalidTransition("Case has no advocate to review", details={"case_id": case_id})
            if await repo.has_event(case_id, EVENT_REVIEWED):
                raise InvalidTransition("Case has already been reviewed", details={"case_id": case_id})
            # Serialises reviews of one case; the later writer misses the version.
            if not await repo.bump_version(case_id, expected_version=case.version):
                raise self._stale(case_id, expected=status)

            await WorkloadLedger(session).record_review(case.advocate_id, stars=stars)
            await repo.add_timeline_entry(
                case_id,
                event=EVENT_REVIEWED,
                description=f"Client rated the advocate {stars}/5",
                actor_id=actor_id,
            )
            advocate_id = case.advocate_id

        async with self._session_factory() as session:
            advocate = await AdvocateRepo(session).get_by_id(advocate_id)
        if advocate is None:
            raise NotFoundError(f"Advocate {advocate_id} not found", details={"advocate_id": advocate_id})
        return advocate

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, case_id: str) -> CaseRow:
        """Fresh read of a case with its full timeline."""
        async with self._session_factory() as session:
            return await self._require_case(CaseRepo(session), case_id)

    async def advocate_for_user(self, user_id: str) -> AdvocateRow | None:
        """The advocate profile owned by a platform user, if any."""
        async with self._session_factory() as session:
            return await AdvocateRepo(session).get_by_user_id(user_id)

    async def stale_claims(
        self,
        status: CaseStatus,
        older_than: timedelta,
        *,
        limit: int = 100,
    ) -> list[CaseRow]:
        """Cases that have sat in ``status`` for longer than ``older_than``."""
        cutoff = utcnow() - older_than
        async with self._session_factory() as session:
            return await CaseRepo(session).list_in_status_since(status.value, before=cutoff, limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _apply(self, session: AsyncSession, change: _Transition) -> None:
        """Conditional status write, timeline entry and ledger effects on one session."""
        repo = CaseRepo(session)
        case = change.case
        updated = await repo.transition(
            case.id,
            expected_status=change.from_status.value,
            expected_version=case.version,
            values={"status": change.to_status.value, **change.values},
            require_unclaimed=change.require_unclaimed,
        )
        if not updated:
            await self._raise_conflict(repo, case.id, change)

        await repo.add_timeline_entry(
            case.id,
            event=change.event,
            description=change.description,
            actor_id=change.actor_id,
            from_status=change.from_status.value,
            to_status=change.to_status.value,
        )

        # Counters belong to the claimant as read, or to the new claimant.
        provider_id = case.advocate_id or change.values.get("advocate_id")
        if provider_id is not None:
            ledger = WorkloadLedger(session)
            await ledger.apply(provider_id, workload_delta(change.from_status, change.to_status))
            if change.outcome is not None:
                await ledger.record_outcome(provider_id, won=change.outcome.result == OutcomeResult.SUCCESS)

        CASE_TRANSITIONS.labels(
            from_status=change.from_status.value,
            to_status=change.to_status.value,
        ).inc()
        logger.info(
            "case_transitioned",
            case_id=case.id,
            from_status=change.from_status,
            to_status=change.to_status,
            actor_id=change.actor_id,
            advocate_id=provider_id,
        )

    async def _raise_conflict(self, repo: CaseRepo, case_id: str, change: _Transition) -> None:
        fresh = await repo.get_by_id(case_id)
        if change.require_unclaimed and fresh is not None and fresh.advocate_id is not None:
            ASSIGNMENT_CONFLICTS.labels(kind="already_claimed").inc()
            raise AlreadyClaimed("Case already has an advocate", details={"case_id": case_id})
        actual = CaseStatus(fresh.status) if fresh is not None else None
        raise self._stale(case_id, expected=change.from_status, actual=actual)

    @staticmethod
    def _stale(
        case_id: str,
        *,
        expected: CaseStatus,
        actual: CaseStatus | None = None,
    ) -> StaleState:
        ASSIGNMENT_CONFLICTS.labels(kind="stale_state").inc()
        details: dict[str, Any] = {"case_id": case_id, "expected_status": expected.value}
        if actual is not None:
            details["actual_status"] = actual.value
        return StaleState("Case changed since it was read; re-read and retry", details=details)

    @staticmethod
    async def _require_case(repo: CaseRepo, case_id: str) -> CaseRow:
        case = await repo.get_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Case {case_id} not found", details={"case_id": case_id})
        return case

    @staticmethod
    async def _claimant(session: AsyncSession, case: CaseRow) -> AdvocateRow | None:
        if case.advocate_id is None:
            return None
        return await AdvocateRepo(session).get_by_id(case.advocate_id)

    @staticmethod
    async def _is_replay(
        repo: CaseRepo,
        case: CaseRow,
        from_status: CaseStatus | None,
        to_status: CaseStatus,
    ) -> bool:
        """Whether the latest recorded transition already is ``from_status -> to_status``.

        ``from_status=None`` matches any origin.
        """
        latest = await repo.latest_transition(case.id)
        if latest is None or latest.to_status != to_status.value:
            return False
        return from_status is None or latest.from_status == from_status.value

    async def _is_response_replay(
        self,
        repo: CaseRepo,
        case: CaseRow,
        provider_id: str,
        accept: bool,
        actor_id: str | None,
    ) -> bool:
        current = CaseStatus(case.status)
        if accept:
            return (
                current == CaseStatus.ASSIGNED
                and case.advocate_id == provider_id
                and await self._is_replay(repo, case, CaseStatus.PENDING_ACCEPTANCE, CaseStatus.ASSIGNED)
            )
        if current != CaseStatus.PENDING_ADVOCATE:
            return False
        latest = await repo.latest_transition(case.id)
        return (
            latest is not None
            and latest.event == EVENT_ADVOCATE_REJECTED
            and latest.actor_id == actor_id
        )
