"""Health check endpoints.

Provides liveness (/health), readiness (/health/ready), and startup
(/health/startup) checks.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.clienthub.config import get_settings
from src.clienthub.core.database import get_engine
from src.clienthub.core.redis import get_redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies() -> dict:
    """Check database, Redis, and LiteLLM configuration. Returns check results dict."""
    checks: dict = {"database": "ok", "redis": "ok", "litellm": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    try:
        redis = get_redis_pool()
        pong = await redis.ping()
        if not pong:
            checks["redis"] = "error"
            checks["redis_error"] = "PING did not return PONG"
    except Exception as e:
        checks["redis"] = "error"
        checks["redis_error"] = str(e)

    # Summaries are optional; missing keys only disable them
    settings = get_settings()
    if not (settings.ANTHROPIC_API_KEY or settings.OPENAI_API_KEY):
        checks["litellm"] = "no_keys"

    return checks


def _healthy(checks: dict) -> bool:
    return (
        checks.get("database") == "ok"
        and checks.get("redis") == "ok"
        and checks.get("litellm") in ("ok", "no_keys")
    )


@router.get("/health/ready")
async def readiness_check():
    """Readiness check: 200 if DB and Redis respond, 503 otherwise."""
    checks = await _check_dependencies()
    all_healthy = _healthy(checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )


@router.get("/health/startup")
async def startup_check():
    """Startup check: same as readiness, reported as started / starting."""
    checks = await _check_dependencies()
    all_healthy = _healthy(checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "started" if all_healthy else "starting",
            "checks": checks,
        },
    )
