"""Shared test fixtures and factory functions.

Factories return valid domain objects with sensible defaults. Override
any field via keyword arguments to create specific test scenarios
without repeating boilerplate.

Every test gets its own SQLite database file under tmp_path, so tests
are isolated and concurrent-writer scenarios behave like production
(separate connections, real locking). Redis is an AsyncMock.
"""

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from case_engine.api.app import close_resources, create_app, init_resources
from case_engine.core.config import Settings
from case_engine.db.repositories import AdvocateRepo
from case_engine.db.session import create_engine, create_schema, create_session_factory, get_session
from case_engine.models.database import AdvocateRow
from case_engine.models.domain import (
    CaseProfile,
    Classification,
    ProviderProfile,
    UrgencyAssessment,
    UrgencyLevel,
)
from case_engine.services.analysis.lexicon import Lexicon, parse_lexicon
from case_engine.services.lifecycle.lifecycle import CaseLifecycle
from case_engine.services.notifications.publisher import NotificationPublisher

TEST_QUEUE_KEY = "test:notifications"

# ---------------------------------------------------------------------------
# Settings / App / Client
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings configured for testing: console logs, per-test SQLite file."""
    return Settings(
        debug=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'case_engine.db'}",
        redis_url="redis://localhost:6379/1",
        notification_queue_key=TEST_QUEUE_KEY,
        auto_create_schema=True,
        log_format="console",
        log_level="DEBUG",
    )


@pytest.fixture
def mock_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.lpush = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock(return_value=None)
    return redis


@pytest.fixture
async def app(test_settings: Settings, mock_redis: AsyncMock) -> AsyncIterator[FastAPI]:
    """FastAPI application wired with test settings and a fake Redis."""
    application = create_app(test_settings)
    await init_resources(application, test_settings, redis=mock_redis)
    yield application
    await close_resources(application)


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Service-level fixtures (no HTTP)
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(test_settings: Settings) -> AsyncIterator[AsyncEngine]:
    db_engine = create_engine(test_settings)
    await create_schema(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def publisher(mock_redis: AsyncMock) -> NotificationPublisher:
    return NotificationPublisher(mock_redis, queue_key=TEST_QUEUE_KEY)


@pytest.fixture
def lifecycle(
    session_factory: async_sessionmaker[AsyncSession],
    publisher: NotificationPublisher,
) -> CaseLifecycle:
    return CaseLifecycle(session_factory, publisher)


# ---------------------------------------------------------------------------
# Identity headers
# ---------------------------------------------------------------------------


def client_headers(user_id: str = "client-1") -> dict[str, str]:
    return {"X-User-ID": user_id, "X-User-Role": "client"}


def advocate_headers(user_id: str) -> dict[str, str]:
    return {"X-User-ID": user_id, "X-User-Role": "advocate"}


def admin_headers(user_id: str = "admin-1") -> dict[str, str]:
    return {"X-User-ID": user_id, "X-User-Role": "admin"}


# ---------------------------------------------------------------------------
# Domain model factories
# ---------------------------------------------------------------------------


def make_provider_profile(**overrides: object) -> ProviderProfile:
    """Build a verified, available ProviderProfile."""
    defaults: dict[str, object] = {
        "id": "adv-1",
        "name": "Asha Rao",
        "specializations": ["Property Law"],
        "experience_years": 8,
        "rating": 4.5,
        "success_rate": 80.0,
        "verified": True,
        "accepting_cases": True,
        "current_case_load": 2,
        "city": "Pune",
    }
    defaults.update(overrides)
    return ProviderProfile(**defaults)  # type: ignore[arg-type]


def make_case_profile(**overrides: object) -> CaseProfile:
    defaults: dict[str, object] = {
        "id": "case-1",
        "category": "Property",
        "urgency_level": UrgencyLevel.HIGH,
        "city": "Pune",
    }
    defaults.update(overrides)
    return CaseProfile(**defaults)  # type: ignore[arg-type]


def make_classification(**overrides: object) -> Classification:
    defaults: dict[str, object] = {
        "category": "Property",
        "confidence": 68,
        "score": 4,
        "matched_keywords": ["eviction", "eviction notice"],
        "lexicon_version": "test",
    }
    defaults.update(overrides)
    return Classification(**defaults)  # type: ignore[arg-type]


def make_urgency(**overrides: object) -> UrgencyAssessment:
    defaults: dict[str, object] = {
        "level": UrgencyLevel.HIGH,
        "score": 70,
        "matched_keywords": ["eviction notice"],
    }
    defaults.update(overrides)
    return UrgencyAssessment(**defaults)  # type: ignore[arg-type]


def lexicon_data(**overrides: Any) -> dict[str, Any]:
    """Raw mapping for a small hand-built lexicon."""
    data: dict[str, Any] = {
        "version": "test-1",
        "default_category": "General",
        "default_confidence": 60,
        "categories": [
            {
                "name": "Property",
                "keywords": [
                    {"keyword": "eviction", "weight": 2},
                    "eviction notice",
                    {"keyword": "landlord", "weight": 2},
                ],
            },
            {
                "name": "Family",
                "keywords": [{"keyword": "divorce", "weight": 3}, "custody"],
            },
            {
                "name": "Labor",
                "keywords": [{"keyword": "salary", "weight": 2}, {"keyword": "fired", "weight": 2}],
            },
            {
                "name": "Consumer",
                "keywords": [{"keyword": "refund", "weight": 2}, {"keyword": "defective", "weight": 2}],
            },
        ],
        "tiers": [
            {
                "level": "critical",
                "min_score": 90,
                "max_score": 99,
                "keywords": ["urgent", "immediately", "arrested"],
                "category_keywords": {"Family": ["domestic violence"]},
            },
            {
                "level": "high",
                "min_score": 70,
                "max_score": 84,
                "keywords": ["eviction notice", "deadline", "hearing"],
                "category_keywords": {"Property": ["lockout"]},
            },
            {
                "level": "medium",
                "min_score": 45,
                "max_score": 64,
                "keywords": ["dispute", "pending"],
            },
            {
                "level": "low",
                "min_score": 20,
                "max_score": 34,
                "keywords": ["advice", "curious"],
            },
        ],
    }
    data.update(overrides)
    return data


def make_lexicon(**overrides: Any) -> Lexicon:
    return parse_lexicon(lexicon_data(**overrides))


# ---------------------------------------------------------------------------
# Database factories
# ---------------------------------------------------------------------------


async def insert_advocate(
    session_factory: async_sessionmaker[AsyncSession],
    **overrides: Any,
) -> AdvocateRow:
    """Commit a verified, available advocate and return the row."""
    defaults: dict[str, Any] = {
        "user_id": "adv-user-1",
        "name": "Asha Rao",
        "specializations": ["Property Law"],
        "experience_years": 8,
        "rating": 4.5,
        "total_reviews": 0,
        "success_rate": 80.0,
        "total_cases": 0,
        "cases_won": 0,
        "current_case_load": 0,
        "verified": True,
        "accepting_cases": True,
        "city": "Pune",
    }
    defaults.update(overrides)
    async with get_session(session_factory) as session:
        return await AdvocateRepo(session).create(AdvocateRow(**defaults))


async def fetch_advocate(
    session_factory: async_sessionmaker[AsyncSession],
    advocate_id: str,
) -> AdvocateRow:
    async with session_factory() as session:
        advocate = await AdvocateRepo(session).get_by_id(advocate_id)
    assert advocate is not None
    return advocate
