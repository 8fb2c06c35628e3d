"""Health check and version endpoints."""

import os

from fastapi import APIRouter, Depends

from app.api.models import HealthResponse
from app.container import ServiceContainer, get_services

router = APIRouter(tags=["health"])


@router.get("/healthz", response_model=HealthResponse)
async def healthz(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    """Service status, verifier mode and live session/client counts."""
    return HealthResponse(
        ok=True,
        verifier_mode=services.verifier.mode,
        active_sessions=services.sessions.active_count,
        connected_clients=services.dispatcher.connected_count,
    )


@router.get("/version")
def version():
    # GIT_SHA is injected at deploy time
    return {"git_sha": os.getenv("GIT_SHA", "unknown")}
