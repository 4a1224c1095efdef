"""Health check endpoints — Service and backend health monitoring."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from volunteermaniac import __version__
from volunteermaniac.api.deps import get_engine
from volunteermaniac.core.engine import SearchEngine
from volunteermaniac.models.result import ServiceHealth

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Response models ──────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    """Service health check response."""

    status: str = Field(description="Health status (e.g. 'healthy')")
    version: str = Field(description="VolunteerManiac server version")
    service: str = Field(description="Service name ('volunteermaniac')")
    registered_backends: list[str] = Field(description="Names of the registered backends")


class BackendHealthResponse(BaseModel):
    """Per-backend health check response.

    Keys are backend names, values are the (possibly cached) health probe
    results with latency and error message.
    """

    backends: dict[str, ServiceHealth] = Field(
        description="Map of backend name to its health status",
    )


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service Health Check",
    description="Returns service status, server version, and the registered backends.",
)
async def health_check(
    engine: SearchEngine = Depends(get_engine),
) -> HealthResponse:
    """Basic health check endpoint with backend info."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        service="volunteermaniac",
        registered_backends=engine.registry.names,
    )


@router.get(
    "/health/backends",
    response_model=BackendHealthResponse,
    summary="Backend Health Check",
    description=(
        "Report the health of every registered backend. Probe results are "
        "cached per backend for the registry's health TTL."
    ),
)
async def backend_health(
    engine: SearchEngine = Depends(get_engine),
) -> BackendHealthResponse:
    """Check health of all backends."""
    statuses = await engine.registry.health_all()
    return BackendHealthResponse(backends={status.source: status for status in statuses})
