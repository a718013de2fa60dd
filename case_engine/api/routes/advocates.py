"""Advocate profile endpoints.

POST /advocates                          register a profile (admin)
GET  /advocates/{advocate_id}            public profile and track record
PUT  /advocates/{advocate_id}/availability   toggle accepting new cases
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from case_engine.api.dependencies import Caller, get_advocate_repo, get_caller, require_role
from case_engine.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from case_engine.db.repositories import AdvocateRepo
from case_engine.models.database import AdvocateRow
from case_engine.models.domain import UserRole
from case_engine.models.requests import AdvocateCreateRequest, AvailabilityRequest
from case_engine.models.responses import AdvocateDetail

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

router = APIRouter(prefix="/advocates", tags=["advocates"])


async def _load_advocate(repo: AdvocateRepo, advocate_id: str) -> AdvocateRow:
    advocate = await repo.get_by_id(advocate_id)
    if advocate is None:
        raise NotFoundError(f"Advocate {advocate_id} not found", details={"advocate_id": advocate_id})
    return advocate


@router.post("", response_model=AdvocateDetail, status_code=201, summary="Register an advocate")
async def create_advocate(
    body: AdvocateCreateRequest,
    _caller: Caller = Depends(require_role(UserRole.ADMIN)),
    repo: AdvocateRepo = Depends(get_advocate_repo),
) -> AdvocateDetail:
    if await repo.get_by_user_id(body.user_id) is not None:
        raise ConflictError(
            "An advocate profile already exists for this user",
            details={"user_id": body.user_id},
        )
    advocate = await repo.create(
        AdvocateRow(
            user_id=body.user_id,
            name=body.name,
            specializations=[s.strip() for s in body.specializations if s.strip()],
            experience_years=body.experience_years,
            rating=body.rating,
            total_reviews=body.total_reviews,
            success_rate=body.derived_success_rate,
            total_cases=body.total_cases,
            cases_won=body.cases_won,
            current_case_load=0,
            verified=body.verified,
            accepting_cases=body.accepting_cases,
            city=body.city,
        )
    )
    logger.info("advocate_registered", advocate_id=advocate.id, verified=advocate.verified)
    return AdvocateDetail.from_row(advocate)


@router.get("/{advocate_id}", response_model=AdvocateDetail, summary="Get an advocate")
async def get_advocate(
    advocate_id: str,
    _caller: Caller = Depends(get_caller),
    repo: AdvocateRepo = Depends(get_advocate_repo),
) -> AdvocateDetail:
    return AdvocateDetail.from_row(await _load_advocate(repo, advocate_id))


@router.put(
    "/{advocate_id}/availability",
    response_model=AdvocateDetail,
    summary="Set whether an advocate takes new cases",
)
async def set_availability(
    advocate_id: str,
    body: AvailabilityRequest,
    caller: Caller = Depends(require_role(UserRole.ADVOCATE)),
    repo: AdvocateRepo = Depends(get_advocate_repo),
) -> AdvocateDetail:
    """Only the advocate themselves (or an admin) can change availability."""
    advocate = await _load_advocate(repo, advocate_id)
    if not caller.is_admin and advocate.user_id != caller.user_id:
        raise ForbiddenError("You can only change your own availability", details={"advocate_id": advocate_id})

    await repo.set_accepting_cases(advocate_id, body.accepting_cases)
    logger.info("advocate_availability_changed", advocate_id=advocate_id, accepting=body.accepting_cases)
    return AdvocateDetail.from_row(await _load_advocate(repo, advocate_id))
