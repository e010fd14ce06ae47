"""
Faultline: Health Check Route
=============================

What:  Liveness endpoint for the reference app, with the capture layer's state.
How:   Reads the shared capture configuration; never contacts the collector.
Who:   Docker health checks, load balancers, operators checking a deployment.

Status levels:
    - healthy:   Collector configured, faults are reported.
    - degraded:  No collector configured; faults are only logged locally.
"""

import logging
import time

from fastapi import APIRouter
from pydantic import BaseModel, Field

from faultline import __version__
from faultline.capture import capture_config

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


class HealthResponse(BaseModel):
    """Body of GET /health."""

    status: str = Field(description="healthy or degraded")
    version: str = Field(description="Faultline version")
    collector: str = Field(description="configured or not_configured")
    capture_context: bool = Field(description="Whether HTTP context is attached to reports")
    uptime_seconds: float = Field(description="Seconds since the process started")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    snapshot = capture_config.snapshot()
    configured = snapshot.transport is not None
    if not configured:
        logger.debug("Health check: error collector not configured")

    return HealthResponse(
        status="healthy" if configured else "degraded",
        version=__version__,
        collector="configured" if configured else "not_configured",
        capture_context=snapshot.capture_context,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
