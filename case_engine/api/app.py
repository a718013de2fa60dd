"""FastAPI application factory and lifespan management.

create_app() builds the fully configured application: logging,
middleware, exception handlers, and routes. The lifespan opens the
database engine, the Redis client and the shared services on startup
and releases them on shutdown. Tests call init_resources() directly
with a fake Redis client since ASGI test transports skip the lifespan.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from redis.asyncio import Redis

from case_engine.api.dependencies import get_settings
from case_engine.api.middleware import RequestTracingMiddleware, register_exception_handlers
from case_engine.api.routes import api_router, health
from case_engine.core.config import Settings
from case_engine.core.logging import setup_logging
from case_engine.db.session import create_engine, create_schema, create_session_factory
from case_engine.services.analysis.analyzer import CaseAnalyzer
from case_engine.services.analysis.lexicon import load_lexicon
from case_engine.services.lifecycle.lifecycle import CaseLifecycle
from case_engine.services.matching.ranker import MatchRanker
from case_engine.services.notifications.publisher import NotificationPublisher

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

APP_VERSION = "0.1.0"


async def init_resources(app: FastAPI, settings: Settings, *, redis: Redis | None = None) -> None:
    """Create the engine, Redis client and services and hang them on app.state."""
    engine = create_engine(settings)
    if settings.auto_create_schema:
        await create_schema(engine)
    session_factory = create_session_factory(engine)

    if redis is None:
        redis = Redis.from_url(settings.redis_url, decode_responses=True)

    lexicon = load_lexicon(settings.lexicon_path)
    publisher = NotificationPublisher(
        redis,
        queue_key=settings.notification_queue_key,
        enabled=settings.notifications_enabled,
    )

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.redis = redis
    app.state.lexicon = lexicon
    app.state.analyzer = CaseAnalyzer(lexicon, low_confidence_threshold=settings.low_confidence_threshold)
    app.state.ranker = MatchRanker(
        max_results=settings.max_recommendations,
        specialization_boost=settings.specialization_boost,
        max_case_load=settings.max_case_load,
    )
    app.state.publisher = publisher
    app.state.lifecycle = CaseLifecycle(session_factory, publisher)

    logger.info(
        "resources_initialised",
        lexicon_version=lexicon.version,
        categories=len(lexicon.categories),
        notifications_enabled=settings.notifications_enabled,
    )


async def close_resources(app: FastAPI) -> None:
    """Release connections opened by init_resources()."""
    redis: Redis | None = getattr(app.state, "redis", None)
    if redis is not None:
        await redis.aclose()
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown."""
    settings: Settings = app.state.settings
    logger.info("application_starting", version=APP_VERSION, debug=settings.debug)
    await init_resources(app, settings)
    try:
        yield
    finally:
        logger.info("application_shutting_down")
        await close_resources(app)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return a fully configured FastAPI application."""
    if settings is None:
        settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="Case Intake & Matching Engine",
        description="Classifies legal cases, ranks advocates and drives the case lifecycle",
        version=APP_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings

    app.add_middleware(RequestTracingMiddleware)

    register_exception_handlers(app)

    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(health.router)

    return app
