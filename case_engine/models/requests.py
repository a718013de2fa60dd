"""API request schemas.

Every inbound request body is validated through one of these models.
No raw dicts ever reach the service layer.
"""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from case_engine.models.domain import (
    AssignmentAction,
    CaseStatus,
    Location,
    OutcomeResult,
)

# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


class CaseCreateRequest(BaseModel):
    """Submit a new legal matter."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    category: str | None = Field(
        default=None,
        max_length=50,
        description="Client's own choice of legal category; inference may override it",
    )
    location: Location | None = None


class HireRequest(BaseModel):
    """Ask a specific advocate to take a case."""

    model_config = ConfigDict(frozen=True)

    advocate_id: str = Field(..., min_length=1)


class RespondRequest(BaseModel):
    """An advocate's answer to a pending case request."""

    model_config = ConfigDict(frozen=True)

    action: AssignmentAction
    reason: str = Field(default="", max_length=1000)


class StatusUpdateRequest(BaseModel):
    """Move a case along the status graph."""

    model_config = ConfigDict(frozen=True)

    status: CaseStatus
    note: str = Field(default="", max_length=1000)
    expected_status: CaseStatus | None = Field(
        default=None,
        description="Status the caller last saw; omitted means the current persisted status",
    )


class CompleteRequest(BaseModel):
    """Finish a case and record how it went."""

    model_config = ConfigDict(frozen=True)

    status: CaseStatus = CaseStatus.COMPLETED
    result: OutcomeResult | None = None
    description: str = Field(default="", max_length=2000)


class ReviewRequest(BaseModel):
    """A client's rating of the advocate on a finished case."""

    model_config = ConfigDict(frozen=True)

    stars: int = Field(..., ge=1, le=5)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class AnalysisRequest(BaseModel):
    """Preview classification and urgency without creating a case."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., max_length=2000)
    category: str | None = Field(default=None, max_length=50)


# ---------------------------------------------------------------------------
# Advocates
# ---------------------------------------------------------------------------


class AdvocateCreateRequest(BaseModel):
    """Register an advocate profile (admin only).

    ``success_rate`` and ``rating`` are recomputed from the counters as
    outcomes and reviews arrive. When ``total_cases`` is given the success
    rate is derived from ``cases_won`` instead of taken as sent, and a
    seeded ``rating`` only carries weight through ``total_reviews``.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    specializations: list[str] = Field(default_factory=list, max_length=20)
    experience_years: int = Field(default=0, ge=0, le=80)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    total_cases: int = Field(default=0, ge=0)
    cases_won: int = Field(default=0, ge=0)
    total_reviews: int = Field(default=0, ge=0)
    verified: bool = False
    accepting_cases: bool = True
    city: str | None = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def _won_within_total(self) -> Self:
        if self.cases_won > self.total_cases:
            raise ValueError("cases_won cannot exceed total_cases")
        return self

    @property
    def derived_success_rate(self) -> float:
        if self.total_cases == 0:
            return self.success_rate
        return self.cases_won * 100.0 / self.total_cases


class AvailabilityRequest(BaseModel):
    """Toggle whether an advocate takes new cases."""

    model_config = ConfigDict(frozen=True)

    accepting_cases: bool
