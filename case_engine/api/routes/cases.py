"""Case API endpoints.

POST /cases                          submit and analyse a case (201)
GET  /cases/stale                    cases stuck in one status (admin)
GET  /cases/{case_id}                case with timeline
GET  /cases/{case_id}/recommendations
POST /cases/{case_id}/hire           request a specific advocate
POST /cases/{case_id}/respond        claimant accepts or declines
PUT  /cases/{case_id}/status         generic status change
POST /cases/{case_id}/complete       finish with an outcome
POST /cases/{case_id}/reanalyze      re-run analysis on a live case
POST /cases/{case_id}/review         rate the advocate of a finished case

Mutating endpoints go through CaseLifecycle, which owns its transactions;
they must not hold a request-scoped session open while it runs. Where the
expected status is derived server-side, StaleState is retried with a
fresh read; a caller-supplied expected status is never retried.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TypeVar

import structlog
from fastapi import APIRouter, Depends, Query
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from case_engine.api.dependencies import (
    Caller,
    get_advocate_repo,
    get_analyzer,
    get_caller,
    get_case_repo,
    get_lifecycle,
    get_ranker,
    get_settings_from_app,
    require_role,
)
from case_engine.core.config import Settings
from case_engine.core.exceptions import ForbiddenError, NotFoundError, StaleState
from case_engine.core.logging import bind_case_context
from case_engine.db.repositories import AdvocateRepo, CaseRepo
from case_engine.models.database import AdvocateRow, CaseRow
from case_engine.models.domain import (
    AssignmentAction,
    CaseOutcome,
    CaseProfile,
    CaseStatus,
    ClassificationHints,
    ProviderProfile,
    UrgencyLevel,
    UserRole,
)
from case_engine.models.requests import (
    CaseCreateRequest,
    CompleteRequest,
    HireRequest,
    RespondRequest,
    ReviewRequest,
    StatusUpdateRequest,
)
from case_engine.models.responses import (
    AdvocateDetail,
    CaseCreatedResponse,
    CaseDetail,
    RecommendationsResponse,
    StaleCasesResponse,
)
from case_engine.services.analysis.analyzer import CaseAnalyzer
from case_engine.services.lifecycle.lifecycle import CaseLifecycle
from case_engine.services.matching.ranker import MatchRanker

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

router = APIRouter(prefix="/cases", tags=["cases"])

T = TypeVar("T")

# Status changes each party may make through PUT /status.
_CLIENT_TARGETS = frozenset({CaseStatus.WITHDRAWN, CaseStatus.CLOSED})
_ADVOCATE_TARGETS = frozenset({CaseStatus.IN_PROGRESS})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _retry_stale(settings: Settings, operation: Callable[[], Awaitable[T]]) -> T:
    """Run ``operation`` again from a fresh read when it loses a race."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(StaleState),
        stop=stop_after_attempt(settings.stale_retry_attempts),
        wait=wait_exponential(multiplier=0.05, max=0.5),
        reraise=True,
    ):
        with attempt:
            return await operation()
    raise AssertionError("unreachable")  # pragma: no cover


def _is_owner(caller: Caller, case: CaseRow) -> bool:
    return caller.user_id == case.client_id


def _require_owner(caller: Caller, case: CaseRow) -> None:
    if not (caller.is_admin or _is_owner(caller, case)):
        raise ForbiddenError("Only the client who submitted this case can do that", details={"case_id": case.id})


def _is_case_advocate(advocate: AdvocateRow | None, case: CaseRow) -> bool:
    return advocate is not None and case.advocate_id is not None and advocate.id == case.advocate_id


def _provider_profile(row: AdvocateRow) -> ProviderProfile:
    return ProviderProfile(
        id=row.id,
        name=row.name,
        specializations=list(row.specializations or []),
        experience_years=row.experience_years,
        rating=row.rating,
        success_rate=row.success_rate,
        verified=row.verified,
        accepting_cases=row.accepting_cases,
        current_case_load=row.current_case_load,
        city=row.city,
    )


async def _load_case(repo: CaseRepo, case_id: str) -> CaseRow:
    case = await repo.get_by_id(case_id)
    if case is None:
        raise NotFoundError(f"Case {case_id} not found", details={"case_id": case_id})
    return case


# ---------------------------------------------------------------------------
# Submission and reads
# ---------------------------------------------------------------------------


@router.post("", response_model=CaseCreatedResponse, status_code=201, summary="Submit a case")
async def create_case(
    body: CaseCreateRequest,
    caller: Caller = Depends(require_role(UserRole.CLIENT)),
    analyzer: CaseAnalyzer = Depends(get_analyzer),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
) -> CaseCreatedResponse:
    """Classify the description, score its urgency and open the case."""
    classification, urgency = analyzer.analyze(
        body.description,
        ClassificationHints(category=body.category, location=body.location),
    )
    case = await lifecycle.create(
        client_id=caller.user_id,
        title=body.title,
        description=body.description,
        classification=classification,
        urgency=urgency,
        location=body.location,
        manual_category=body.category,
    )
    bind_case_context(case.id)
    return CaseCreatedResponse(
        case=CaseDetail.from_row(case),
        classification=classification,
        urgency=urgency,
    )


@router.get("/stale", response_model=StaleCasesResponse, summary="List cases stuck in a status")
async def list_stale_cases(
    status: CaseStatus = Query(default=CaseStatus.PENDING_ACCEPTANCE),
    older_than_hours: float = Query(default=24.0, gt=0, le=24 * 365),
    limit: int = Query(default=100, ge=1, le=500),
    _caller: Caller = Depends(require_role(UserRole.ADMIN)),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
) -> StaleCasesResponse:
    """Cases that have not changed status for longer than the given window."""
    cases = await lifecycle.stale_claims(status, timedelta(hours=older_than_hours), limit=limit)
    return StaleCasesResponse(
        status=status,
        older_than_hours=older_than_hours,
        total=len(cases),
        cases=[CaseDetail.from_row(c, include_timeline=False) for c in cases],
    )


@router.get("/{case_id}", response_model=CaseDetail, summary="Get a case")
async def get_case(
    case_id: str,
    caller: Caller = Depends(get_caller),
    case_repo: CaseRepo = Depends(get_case_repo),
    advocate_repo: AdvocateRepo = Depends(get_advocate_repo),
) -> CaseDetail:
    """Return the case, its full timeline and how long it has been in its status."""
    bind_case_context(case_id)
    case = await _load_case(case_repo, case_id)
    if not (caller.is_admin or _is_owner(caller, case)):
        advocate = await advocate_repo.get_by_user_id(caller.user_id)
        if not _is_case_advocate(advocate, case):
            raise ForbiddenError("You are not a participant in this case", details={"case_id": case_id})
    return CaseDetail.from_row(case)


@router.get(
    "/{case_id}/recommendations",
    response_model=RecommendationsResponse,
    summary="Rank advocates for a case",
)
async def get_recommendations(
    case_id: str,
    caller: Caller = Depends(get_caller),
    case_repo: CaseRepo = Depends(get_case_repo),
    advocate_repo: AdvocateRepo = Depends(get_advocate_repo),
    ranker: MatchRanker = Depends(get_ranker),
    settings: Settings = Depends(get_settings_from_app),
) -> RecommendationsResponse:
    """Rank verified, available advocates against the case. Nothing is persisted."""
    bind_case_context(case_id)
    case = await _load_case(case_repo, case_id)
    _require_owner(caller, case)

    candidates = await advocate_repo.list_available(max_case_load=settings.max_case_load)
    result = ranker.rank(
        CaseProfile(
            id=case.id,
            category=case.category,
            urgency_level=UrgencyLevel(case.urgency_level),
            city=case.city,
        ),
        [_provider_profile(row) for row in candidates],
    )
    return RecommendationsResponse(
        case_id=case.id,
        recommendations=result.recommendations,
        total_eligible=result.total_eligible,
        message=result.message,
    )


# ---------------------------------------------------------------------------
# Assignment workflow
# ---------------------------------------------------------------------------


@router.post("/{case_id}/hire", response_model=CaseDetail, summary="Request an advocate")
async def hire_advocate(
    case_id: str,
    body: HireRequest,
    caller: Caller = Depends(require_role(UserRole.CLIENT)),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings_from_app),
) -> CaseDetail:
    """Claim the case for one advocate and ask them to accept it."""
    bind_case_context(case_id)
    _require_owner(caller, await lifecycle.get(case_id))
    case = await _retry_stale(
        settings,
        lambda: lifecycle.request_assignment(case_id, body.advocate_id, actor_id=caller.user_id),
    )
    return CaseDetail.from_row(case)


@router.post("/{case_id}/respond", response_model=CaseDetail, summary="Accept or decline a case request")
async def respond_to_request(
    case_id: str,
    body: RespondRequest,
    caller: Caller = Depends(require_role(UserRole.ADVOCATE)),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings_from_app),
) -> CaseDetail:
    """The requested advocate answers the pending claim."""
    bind_case_context(case_id)
    advocate = await lifecycle.advocate_for_user(caller.user_id)
    if advocate is None:
        raise ForbiddenError("No advocate profile is linked to this user", details={"user_id": caller.user_id})
    case = await _retry_stale(
        settings,
        lambda: lifecycle.respond_to_assignment(
            case_id,
            advocate.id,
            accept=body.action == AssignmentAction.ACCEPT,
            actor_id=caller.user_id,
            reason=body.reason,
        ),
    )
    return CaseDetail.from_row(case)


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------


async def _authorize_status_change(
    caller: Caller,
    case: CaseRow,
    target: CaseStatus,
    lifecycle: CaseLifecycle,
) -> None:
    if caller.is_admin:
        return
    if _is_owner(caller, case) and target in _CLIENT_TARGETS:
        return
    if caller.role == UserRole.ADVOCATE and target in _ADVOCATE_TARGETS:
        advocate = await lifecycle.advocate_for_user(caller.user_id)
        if _is_case_advocate(advocate, case):
            return
    raise ForbiddenError(
        f"You cannot move this case to {target.value}",
        details={"case_id": case.id, "to_status": target.value},
    )


@router.put("/{case_id}/status", response_model=CaseDetail, summary="Change case status")
async def update_status(
    case_id: str,
    body: StatusUpdateRequest,
    caller: Caller = Depends(get_caller),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings_from_app),
) -> CaseDetail:
    """Move a case along the status graph.

    With ``expected_status`` the change applies only if the case is still
    there (409 ``stale_state`` otherwise). Without it the current status
    is used and lost races are retried.
    """
    bind_case_context(case_id)
    await _authorize_status_change(caller, await lifecycle.get(case_id), body.status, lifecycle)

    if body.expected_status is not None:
        case = await lifecycle.transition(
            case_id,
            body.expected_status,
            body.status,
            actor_id=caller.user_id,
            note=body.note,
        )
        return CaseDetail.from_row(case)

    async def _from_current() -> CaseRow:
        current = await lifecycle.get(case_id)
        return await lifecycle.transition(
            case_id,
            CaseStatus(current.status),
            body.status,
            actor_id=caller.user_id,
            note=body.note,
        )

    return CaseDetail.from_row(await _retry_stale(settings, _from_current))


@router.post("/{case_id}/complete", response_model=CaseDetail, summary="Complete a case")
async def complete_case(
    case_id: str,
    body: CompleteRequest,
    caller: Caller = Depends(require_role(UserRole.ADVOCATE)),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings_from_app),
) -> CaseDetail:
    """Finish an active case and record the outcome on the advocate's track record."""
    bind_case_context(case_id)
    case = await lifecycle.get(case_id)
    if not caller.is_admin:
        advocate = await lifecycle.advocate_for_user(caller.user_id)
        if not _is_case_advocate(advocate, case):
            raise ForbiddenError("Only the assigned advocate can complete this case", details={"case_id": case_id})

    outcome = CaseOutcome(status=body.status, result=body.result, description=body.description)
    case = await _retry_stale(
        settings,
        lambda: lifecycle.complete(case_id, outcome, actor_id=caller.user_id),
    )
    return CaseDetail.from_row(case)


@router.post("/{case_id}/reanalyze", response_model=CaseDetail, summary="Re-run analysis")
async def reanalyze_case(
    case_id: str,
    caller: Caller = Depends(get_caller),
    analyzer: CaseAnalyzer = Depends(get_analyzer),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings_from_app),
) -> CaseDetail:
    """Re-classify a live case against the current lexicon."""
    bind_case_context(case_id)
    _require_owner(caller, await lifecycle.get(case_id))

    async def _reanalyze() -> CaseRow:
        current = await lifecycle.get(case_id)
        classification, urgency = analyzer.analyze(
            current.description,
            ClassificationHints(category=current.manual_category),
        )
        return await lifecycle.reanalyze(
            case_id,
            classification=classification,
            urgency=urgency,
            actor_id=caller.user_id,
        )

    return CaseDetail.from_row(await _retry_stale(settings, _reanalyze))


@router.post("/{case_id}/review", response_model=AdvocateDetail, summary="Review the advocate")
async def review_case(
    case_id: str,
    body: ReviewRequest,
    caller: Caller = Depends(require_role(UserRole.CLIENT)),
    lifecycle: CaseLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings_from_app),
) -> AdvocateDetail:
    """Rate the advocate who handled a finished case; returns their updated stats."""
    bind_case_context(case_id)
    _require_owner(caller, await lifecycle.get(case_id))
    advocate = await _retry_stale(
        settings,
        lambda: lifecycle.review(case_id, stars=body.stars, actor_id=caller.user_id),
    )
    logger.info("case_reviewed", case_id=case_id, advocate_id=advocate.id, stars=body.stars)
    return AdvocateDetail.from_row(advocate)
