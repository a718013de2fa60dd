"""FastAPI dependency injection providers.

Every external resource the API layer needs is accessed through a
Depends() callable defined here. Services are resolved from app.state,
which the lifespan populates at startup.

Callers are identified by the ``X-User-ID`` and ``X-User-Role`` headers
set by the upstream gateway after authentication.
"""

from collections.abc import AsyncIterator
from functools import lru_cache

from fastapi import Depends, Header, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from case_engine.core.config import Settings
from case_engine.core.exceptions import ForbiddenError
from case_engine.db.repositories import AdvocateRepo, CaseRepo
from case_engine.models.domain import UserRole
from case_engine.services.analysis.analyzer import CaseAnalyzer
from case_engine.services.lifecycle.lifecycle import CaseLifecycle
from case_engine.services.matching.ranker import MatchRanker


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


def get_settings_from_app(request: Request) -> Settings:
    """Retrieve settings stored on the running app instance.

    Preferred over the cached version inside route handlers since
    it respects the settings the app was actually started with
    (important for tests that override config).
    """
    settings: Settings = request.app.state.settings
    return settings


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async DB session scoped to the request lifecycle.

    Commits on success, rolls back on exception, always closes.
    """
    factory = request.app.state.session_factory
    session: AsyncSession = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def get_case_repo(
    session: AsyncSession = Depends(get_db_session),
) -> CaseRepo:
    """Provide a CaseRepo bound to the current request session."""
    return CaseRepo(session)


def get_advocate_repo(
    session: AsyncSession = Depends(get_db_session),
) -> AdvocateRepo:
    """Provide an AdvocateRepo bound to the current request session."""
    return AdvocateRepo(session)


def get_lifecycle(request: Request) -> CaseLifecycle:
    """Retrieve the shared case lifecycle service from app state."""
    lifecycle: CaseLifecycle = request.app.state.lifecycle
    return lifecycle


def get_analyzer(request: Request) -> CaseAnalyzer:
    """Retrieve the shared case analyzer from app state."""
    analyzer: CaseAnalyzer = request.app.state.analyzer
    return analyzer


def get_ranker(request: Request) -> MatchRanker:
    """Retrieve the shared match ranker from app state."""
    ranker: MatchRanker = request.app.state.ranker
    return ranker


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------


class Caller(BaseModel):
    """The authenticated user behind a request."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Caller:
    """Resolve the caller from gateway headers."""
    if not x_user_id or not x_user_role:
        raise ForbiddenError("Missing caller identity headers")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise ForbiddenError(
            f"Unknown role {x_user_role!r}",
            details={"allowed_roles": [r.value for r in UserRole]},
        ) from None
    return Caller(user_id=x_user_id.strip(), role=role)


def require_role(*roles: UserRole):  # type: ignore[no-untyped-def]
    """Build a dependency that admits only the given roles (admins always pass)."""

    def _check(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.is_admin or caller.role in roles:
            return caller
        raise ForbiddenError(
            "This action is not available to your role",
            details={"role": caller.role.value, "required": [r.value for r in roles]},
        )

    return _check
