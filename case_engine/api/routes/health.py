"""Health check and Prometheus metrics endpoints.

/health probes the database and Redis through the app's own connection
pools, measures per-probe latency, and reports aggregate status. Probes
are run concurrently to minimise total latency.
"""

import asyncio
import time

import structlog
from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.responses import Response

from case_engine.models.responses import DependencyHealth, HealthResponse

router = APIRouter(tags=["observability"])
logger: structlog.stdlib.BoundLogger = structlog.get_logger()

_APP_VERSION = "0.1.0"
_PROBE_TIMEOUT_SECONDS = 3.0
_start_time: float = time.time()


# ---------------------------------------------------------------------------
# Dependency probes
# ---------------------------------------------------------------------------


async def _probe_database(engine: AsyncEngine | None) -> DependencyHealth:
    """Run SELECT 1 on a pooled connection."""
    if engine is None:
        return DependencyHealth(name="database", status="not_configured")
    start = time.perf_counter()
    try:
        async with asyncio.timeout(_PROBE_TIMEOUT_SECONDS):
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(
            name="database",
            status="healthy",
            latency_ms=round(latency, 2),
            details=engine.dialect.name,
        )
    except Exception as exc:
        latency = (time.perf_counter() - start) * 1000
        logger.warning("health_probe_failed", dependency="database", error=str(exc)[:200])
        return DependencyHealth(
            name="database",
            status="unhealthy",
            latency_ms=round(latency, 2),
            details=str(exc)[:200],
        )


async def _probe_redis(redis: object | None) -> DependencyHealth:
    """Attempt a PING against Redis."""
    if redis is None:
        return DependencyHealth(name="redis", status="not_configured")
    start = time.perf_counter()
    try:
        async with asyncio.timeout(_PROBE_TIMEOUT_SECONDS):
            # redis-py stubs expose ping() as Awaitable[bool] | bool;
            # the async client always returns a coroutine at runtime.
            await redis.ping()  # type: ignore[attr-defined]
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(name="redis", status="healthy", latency_ms=round(latency, 2))
    except Exception as exc:
        latency = (time.perf_counter() - start) * 1000
        logger.warning("health_probe_failed", dependency="redis", error=str(exc)[:200])
        return DependencyHealth(
            name="redis",
            status="unhealthy",
            latency_ms=round(latency, 2),
            details=str(exc)[:200],
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check API and infrastructure dependency health."""
    state = request.app.state
    probes = await asyncio.gather(
        _probe_database(getattr(state, "engine", None)),
        _probe_redis(getattr(state, "redis", None)),
    )
    dependencies = list(probes)

    has_unhealthy = any(d.status == "unhealthy" for d in dependencies)
    all_healthy = all(d.status == "healthy" for d in dependencies)

    if all_healthy:
        status = "healthy"
    elif has_unhealthy:
        status = "unhealthy"
    else:
        status = "degraded"

    return HealthResponse(
        status=status,
        version=_APP_VERSION,
        uptime_seconds=round(time.time() - _start_time, 2),
        dependencies=dependencies,
    )


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
