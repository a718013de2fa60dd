"""SQLAlchemy 2.0 ORM models for all database tables.

Domain enums are stored as VARCHAR via their StrEnum string values.
Timestamps are written by the repositories (timezone-aware UTC) rather
than by the server so that timeline ordering and staleness arithmetic
behave the same on PostgreSQL and SQLite.

``cases.version`` is bumped on every status write; lifecycle updates are
conditional on it (optimistic concurrency). Advocate counters are only
ever changed with single-statement relative UPDATEs.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development/tests).
JSONVariant = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Shared base for all ORM models."""


# ---------------------------------------------------------------------------
# advocates
# ---------------------------------------------------------------------------


class AdvocateRow(Base):
    """A verified legal-service provider and their workload counters."""

    __tablename__ = "advocates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, server_default="")
    specializations: Mapped[list[str]] = mapped_column(JSONVariant, nullable=False, default=list)
    experience_years: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    rating: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    success_rate: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    total_cases: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    cases_won: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    current_case_load: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    accepting_cases: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0")
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("current_case_load >= 0", name="ck_advocates_case_load_non_negative"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_advocates_rating_range"),
        Index("ix_advocates_eligible", "verified", "accepting_cases"),
    )

    def __repr__(self) -> str:
        return f"<AdvocateRow id={self.id!r} load={self.current_case_load} verified={self.verified}>"


# ---------------------------------------------------------------------------
# cases
# ---------------------------------------------------------------------------


class CaseRow(Base):
    """A legal matter submitted by a client."""

    __tablename__ = "cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)

    manual_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    urgency_level: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    urgency_score: Mapped[int] = mapped_column(Integer, nullable=False)
    lexicon_version: Mapped[str] = mapped_column(String(30), nullable=False, server_default="")

    advocate_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("advocates.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")

    outcome_result: Mapped[str | None] = mapped_column(String(20), nullable=True)
    outcome_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_transition_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    timeline: Mapped[list["TimelineRow"]] = relationship(
        back_populates="case",
        order_by="TimelineRow.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_cases_status_transition", "status", "last_transition_at"),
        CheckConstraint("urgency_score >= 0 AND urgency_score <= 100", name="ck_cases_urgency"),
    )

    def __repr__(self) -> str:
        return f"<CaseRow id={self.id!r} status={self.status!r} v={self.version}>"


# ---------------------------------------------------------------------------
# case_timeline
# ---------------------------------------------------------------------------


class TimelineRow(Base):
    """Append-only audit entry for a case. Rows are never updated."""

    __tablename__ = "case_timeline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    case: Mapped["CaseRow"] = relationship(back_populates="timeline")

    def __repr__(self) -> str:
        return f"<TimelineRow case={self.case_id!r} {self.from_status}->{self.to_status} {self.event!r}>"
