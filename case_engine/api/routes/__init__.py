"""API route aggregation.

Versioned sub-routers are collected into a single api_router that the
app factory mounts under the configured prefix. Health and metrics are
mounted at the root for probes and scrapers.
"""

from fastapi import APIRouter

from case_engine.api.routes import advocates, analysis, cases

api_router = APIRouter()
api_router.include_router(cases.router)
api_router.include_router(advocates.router)
api_router.include_router(analysis.router)
