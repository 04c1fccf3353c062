"""Health check endpoint — no auth required."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from config.settings import get_settings
from tokengate.api.deps import get_services
from tokengate.api.models.schemas import HealthResponse
from tokengate.services import GovernanceServices

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    services: GovernanceServices = Depends(get_services),
) -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        version="0.1.0",
        environment=settings.tokengate_env,
        redis=await services.cache.ping(),
    )
