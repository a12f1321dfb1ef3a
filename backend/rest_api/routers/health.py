"""
Health check router.
"""

from typing import Any

import redis
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import get_event_circuit_breaker, get_redis_sync_client

router = APIRouter(tags=["health"])


@router.get("/api/health")
def health_check() -> Any:
    """
    Verify connectivity to PostgreSQL and Redis.

    Returns 503 if the database is down. Redis being down only degrades
    real-time updates, so it is reported without failing the check.
    """
    checks: dict[str, Any] = {
        "service": "rest-api",
        "environment": settings.environment,
        "dependencies": {},
    }

    database_ok = True
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        database_ok = False

    redis_ok = True
    try:
        get_redis_sync_client().ping()
        checks["dependencies"]["redis"] = {"status": "healthy"}
    except redis.RedisError as e:
        checks["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
        redis_ok = False

    checks["event_circuit_breaker"] = get_event_circuit_breaker().get_stats()

    if not database_ok:
        checks["status"] = "unhealthy"
        return JSONResponse(content=checks, status_code=503)
    checks["status"] = "healthy" if redis_ok else "degraded"
    return checks
