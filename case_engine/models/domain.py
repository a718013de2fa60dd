"""Core domain models and enumerations.

These are the canonical data shapes for the case engine. Analysis,
matching, and lifecycle services produce or consume these types, never
raw dicts or ORM rows. Frozen models are used for value objects that
must not change once created (analysis results, recommendations,
timeline entries, notification events).
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CaseStatus(StrEnum):
    """Lifecycle status of a case."""

    SUBMITTED = "submitted"
    ANALYZING = "analyzing"
    PENDING_ADVOCATE = "pending_advocate"
    PENDING_ACCEPTANCE = "pending_acceptance"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    COMPLETED = "completed"
    CLOSED = "closed"
    WITHDRAWN = "withdrawn"


class UrgencyLevel(StrEnum):
    """Urgency tiers, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AssignmentAction(StrEnum):
    """A provider's answer to a pending assignment request."""

    ACCEPT = "accept"
    REJECT = "reject"


class OutcomeResult(StrEnum):
    """How a finished case turned out for the client."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class UserRole(StrEnum):
    """Caller roles resolved by the identity gateway."""

    CLIENT = "client"
    ADVOCATE = "advocate"
    ADMIN = "admin"


class NotificationType(StrEnum):
    """Event types handed to the notification collaborator."""

    CASE_SUBMITTED = "case_submitted"
    CASE_REQUEST = "case_request"
    ADVOCATE_ACCEPTED = "advocate_accepted"
    ADVOCATE_REJECTED = "advocate_rejected"
    CASE_UPDATE = "case_update"


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------


class Location(BaseModel):
    """Where the matter is being handled."""

    model_config = ConfigDict(frozen=True)

    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    country: str | None = Field(default=None, max_length=100)


class ClassificationHints(BaseModel):
    """Optional caller-supplied context for classification."""

    model_config = ConfigDict(frozen=True)

    category: str | None = None
    location: Location | None = None


class Classification(BaseModel):
    """Legal category inferred from case text.

    ``suggested_category`` is set when a manual category hint won but the
    lexicon pointed somewhere else. ``low_confidence`` marks results that
    fell back to (or barely beat) the default category.
    """

    model_config = ConfigDict(frozen=True)

    category: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=0, le=100)
    score: int = Field(default=0, ge=0)
    matched_keywords: list[str] = Field(default_factory=list)
    suggested_category: str | None = None
    low_confidence: bool = False
    lexicon_version: str = ""


class UrgencyAssessment(BaseModel):
    """Urgency tier and score detected in case text."""

    model_config = ConfigDict(frozen=True)

    level: UrgencyLevel
    score: int = Field(..., ge=0, le=100)
    matched_keywords: list[str] = Field(default_factory=list)
    defaulted: bool = Field(
        default=False,
        description="True when no tier keyword matched and the medium default applied",
    )


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class ProviderProfile(BaseModel):
    """Read-only snapshot of an advocate, as seen by the ranker."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    specializations: list[str] = Field(default_factory=list)
    experience_years: int = Field(default=0, ge=0)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    verified: bool = False
    accepting_cases: bool = True
    current_case_load: int = Field(default=0, ge=0)
    city: str | None = None


class CaseProfile(BaseModel):
    """The attributes of a case that matter for matching."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    city: str | None = None


class Recommendation(BaseModel):
    """One ranked provider for a case. Never persisted."""

    model_config = ConfigDict(frozen=True)

    advocate_id: str
    rank: int = Field(..., ge=1)
    match_score: int = Field(..., ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)
    name: str = ""
    experience_years: int = Field(default=0, ge=0)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)


class RankingResult(BaseModel):
    """Ranked recommendations plus the empty-pool signal."""

    model_config = ConfigDict(frozen=True)

    recommendations: list[Recommendation]
    total_eligible: int = Field(..., ge=0)
    message: str | None = None

    @property
    def no_providers_available(self) -> bool:
        return self.total_eligible == 0


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TimelineEntry(BaseModel):
    """Immutable audit record of something that happened to a case."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    event: str
    description: str = ""
    actor_id: str | None = None
    from_status: CaseStatus | None = None
    to_status: CaseStatus | None = None
    created_at: datetime


class CaseOutcome(BaseModel):
    """How a provider closes out their work on a case."""

    model_config = ConfigDict(frozen=True)

    status: CaseStatus = CaseStatus.COMPLETED
    result: OutcomeResult | None = None
    description: str = Field(default="", max_length=2000)


class NotificationEvent(BaseModel):
    """Fire-and-forget event for the notification collaborator."""

    model_config = ConfigDict(frozen=True)

    recipient_id: str
    type: NotificationType
    message: str
    related_case_id: str
    created_at: datetime
