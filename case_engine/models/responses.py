"""API response schemas.

Every outbound response is serialized through one of these models.
Structured error responses are included; the API never leaks raw
stack traces.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from case_engine.models.domain import (
    CaseStatus,
    Classification,
    Location,
    OutcomeResult,
    Recommendation,
    TimelineEntry,
    UrgencyAssessment,
    UrgencyLevel,
)
from case_engine.utils.clock import ensure_utc, utcnow

if TYPE_CHECKING:
    from case_engine.models.database import AdvocateRow, CaseRow, TimelineRow

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Structured error body returned by every exception handler."""

    model_config = ConfigDict(frozen=True)

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    request_id: str | None = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class DependencyHealth(BaseModel):
    """Health status of a single infrastructure dependency."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: str = Field(..., description="'healthy', 'unhealthy', or 'not_configured'")
    latency_ms: float | None = None
    details: str | None = None


class HealthResponse(BaseModel):
    """Aggregate health check response."""

    model_config = ConfigDict(frozen=True)

    status: str = Field(..., description="'healthy', 'degraded', or 'unhealthy'")
    version: str
    uptime_seconds: float
    dependencies: list[DependencyHealth]


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------


def _timeline_entry(row: TimelineRow) -> TimelineEntry:
    return TimelineEntry(
        event=row.event,
        description=row.description,
        actor_id=row.actor_id,
        from_status=CaseStatus(row.from_status) if row.from_status else None,
        to_status=CaseStatus(row.to_status) if row.to_status else None,
        created_at=ensure_utc(row.created_at),
    )


class CaseDetail(BaseModel):
    """A case as seen by its participants."""

    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    title: str
    description: str
    location: Location
    category: str
    manual_category: str | None = None
    suggested_category: str | None = None
    confidence: int
    urgency_level: UrgencyLevel
    urgency_score: int
    lexicon_version: str
    status: CaseStatus
    advocate_id: str | None = None
    version: int
    outcome_result: OutcomeResult | None = None
    outcome_description: str | None = None
    created_at: datetime
    updated_at: datetime
    last_transition_at: datetime
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    time_in_status_seconds: float = Field(..., ge=0)
    timeline: list[TimelineEntry] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: CaseRow, *, include_timeline: bool = True) -> CaseDetail:
        last_transition_at = ensure_utc(row.last_transition_at)
        return cls(
            id=row.id,
            client_id=row.client_id,
            title=row.title,
            description=row.description,
            location=Location(city=row.city, state=row.state, country=row.country),
            category=row.category,
            manual_category=row.manual_category,
            suggested_category=row.suggested_category,
            confidence=row.confidence,
            urgency_level=UrgencyLevel(row.urgency_level),
            urgency_score=row.urgency_score,
            lexicon_version=row.lexicon_version,
            status=CaseStatus(row.status),
            advocate_id=row.advocate_id,
            version=row.version,
            outcome_result=OutcomeResult(row.outcome_result) if row.outcome_result else None,
            outcome_description=row.outcome_description,
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
            last_transition_at=last_transition_at,
            assigned_at=ensure_utc(row.assigned_at) if row.assigned_at else None,
            completed_at=ensure_utc(row.completed_at) if row.completed_at else None,
            time_in_status_seconds=max(0.0, round((utcnow() - last_transition_at).total_seconds(), 3)),
            timeline=[_timeline_entry(t) for t in row.timeline] if include_timeline else [],
        )


class CaseCreatedResponse(BaseModel):
    """Returned after submitting a case: the case plus how it was analysed."""

    model_config = ConfigDict(frozen=True)

    case: CaseDetail
    classification: Classification
    urgency: UrgencyAssessment


class RecommendationsResponse(BaseModel):
    """Ranked advocates for a case."""

    model_config = ConfigDict(frozen=True)

    case_id: str
    recommendations: list[Recommendation]
    total_eligible: int
    message: str | None = None


class StaleCasesResponse(BaseModel):
    """Cases that have sat in one status too long."""

    model_config = ConfigDict(frozen=True)

    status: CaseStatus
    older_than_hours: float
    total: int
    cases: list[CaseDetail]


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


class AnalysisResponse(BaseModel):
    """Classification and urgency for a piece of text."""

    model_config = ConfigDict(frozen=True)

    classification: Classification
    urgency: UrgencyAssessment


# ---------------------------------------------------------------------------
# Advocates
# ---------------------------------------------------------------------------


class AdvocateDetail(BaseModel):
    """Public advocate profile with track record and workload."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    user_id: str
    name: str
    specializations: list[str]
    experience_years: int
    rating: float
    total_reviews: int
    success_rate: float
    total_cases: int
    cases_won: int
    current_case_load: int
    accepting_cases: bool
    verified: bool
    city: str | None = None

    @classmethod
    def from_row(cls, row: AdvocateRow) -> AdvocateDetail:
        return cls.model_validate(row)
