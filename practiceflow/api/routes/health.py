"""
Health Check Endpoints

Liveness, readiness (database + Redis) and a development-only detailed
report that also shows which vendor integrations are configured.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from practiceflow.config import settings
from practiceflow.infra.database import check_db_health
from practiceflow.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

API_VERSION = "1.0.0"

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Record application start. Called once from the lifespan."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


class DetailedHealthResponse(BaseModel):
    """Detailed health check with integration status."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float]
    checks: dict[str, str]
    integrations: dict[str, bool]


async def _dependency_checks() -> dict[str, str]:
    """Database is required; Redis only backs caches and typing flags."""
    db_ok = await check_db_health()
    redis_ok = await check_redis_health()
    if not db_ok:
        logger.warning("Readiness check: Database unhealthy")
    if not redis_ok:
        logger.warning("Readiness check: Redis unavailable, running degraded")
    return {
        "database": "ok" if db_ok else "failed",
        "redis": "ok" if redis_ok else "degraded",
    }


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
)
async def health() -> HealthResponse:
    """Always 200 while the process runs. Use /health/ready for dependencies."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=API_VERSION,
        environment=settings.app_env,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    responses={
        200: {"description": "Database reachable"},
        503: {"description": "Database unavailable"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness probe for load balancers.

    Returns 503 only when the database is down; a missing Redis degrades
    caching but does not stop the service.
    """
    checks = await _dependency_checks()
    is_ready = checks["database"] == "ok"

    response = ReadyResponse(
        status="ready" if is_ready else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if not is_ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    summary="Liveness probe",
)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    include_in_schema=settings.is_development,
)
async def detailed() -> DetailedHealthResponse:
    """Development only. Never exposes secrets, only whether they are set."""
    if not settings.is_development:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not found",
        )

    checks = await _dependency_checks()
    integrations = {
        "email": settings.ses_configured,
        "sms": settings.sns_configured,
        "payments": bool(settings.stripe_secret_key),
        "notes": bool(settings.anthropic_api_key),
    }

    return DetailedHealthResponse(
        status="healthy" if all(v == "ok" for v in checks.values()) else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=API_VERSION,
        environment=settings.app_env,
        uptime_seconds=get_uptime_seconds(),
        checks=checks,
        integrations=integrations,
    )
