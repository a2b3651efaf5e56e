"""
Health Check Endpoints

/health        process is up, with version and uptime
/health/ready  PostgreSQL and Redis reachable; 503 otherwise
/health/live   liveness for container restarts
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

VERSION = "1.0.0"

_started_monotonic: Optional[float] = None


def set_start_time() -> None:
    """Mark process start. Called once from the lifespan."""
    global _started_monotonic
    _started_monotonic = time.monotonic()


def uptime_seconds() -> Optional[float]:
    if _started_monotonic is None:
        return None
    return round(time.monotonic() - _started_monotonic, 3)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: Optional[float] = None


class ReadyResponse(BaseModel):
    """Dependency status: "ok", "failed", "error" or "not_initialized"."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


async def dependency_checks(request: Request) -> dict[str, str]:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        return {"database": "not_initialized", "redis": "not_initialized"}

    checks = {}
    for name, probe in (
        ("database", runtime.database.check_health),
        ("redis", runtime.redis.check_health),
    ):
        try:
            checks[name] = "ok" if await probe() else "failed"
        except Exception as e:
            checks[name] = "error"
            logger.error(f"Readiness check: {name} error - {e}")
    return checks


@router.get("", response_model=HealthResponse, summary="Basic health check")
async def health() -> HealthResponse:
    """Always 200 while the process is serving requests."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        environment=settings.app_env,
        uptime_seconds=uptime_seconds(),
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    responses={503: {"description": "Database or Redis unavailable"}},
)
async def ready(request: Request):
    """
    Readiness probe.

    Without Redis the bot still answers from in-process state, but that
    state is not shared between replicas, so the instance reports not ready.
    """
    checks = await dependency_checks(request)
    all_ok = all(v == "ok" for v in checks.values())

    response = ReadyResponse(
        status="ready" if all_ok else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
    if all_ok:
        return response

    logger.warning(f"Readiness check failed: {checks}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@router.get("/live", summary="Liveness probe")
async def live() -> dict:
    return {"status": "alive", "uptime_seconds": uptime_seconds()}
