"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from crm.auth import permission_cache
from crm.config import settings
from crm.database import engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check (no database or Redis round trip)."""
    return {
        "status": "ok",
        "service": "crm",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check: 200 only when the grant store (and Redis, if caching) answers.

    Redis is reported as "disabled" when the permission cache is off.
    """
    checks = {
        "service": "ok",
        "database": "unknown",
        "redis": "disabled",
    }
    overall_healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        checks["database"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    if permission_cache.cache_enabled():
        try:
            redis_client = await permission_cache.get_redis()
            await redis_client.ping()
            checks["redis"] = "ok"
        except (RedisError, OSError) as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "crm",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
