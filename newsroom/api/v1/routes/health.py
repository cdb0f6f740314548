"""Health check endpoints — used by the platform healthcheck and monitoring."""

from __future__ import annotations

from fastapi import APIRouter

from newsroom.api.v1.deps import AppSettings, Store
from newsroom.schemas.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/healthz/", response_model=HealthResponse)
async def health_check(store: Store, settings: AppSettings) -> HealthResponse:
    reachable = await store.ping()
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        environment=settings.app_env,
        database="connected" if reachable else "unreachable",
    )
