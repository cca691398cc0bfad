"""Liveness and readiness checks.

The database is required; Redis only backs rate limiting, so its absence
degrades readiness instead of failing it.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None


def check_database_health(db: Session) -> ComponentHealth:
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.error("Database health check failed", exc_info=True)
        return ComponentHealth(status=HealthStatus.UNHEALTHY, message="Database unavailable")
    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


def check_redis_health() -> ComponentHealth:
    start = time.perf_counter()
    try:
        Redis.from_url(get_settings().REDIS_URL, socket_connect_timeout=1).ping()
    except (RedisError, OSError):
        logger.warning("Redis health check failed")
        return ComponentHealth(status=HealthStatus.DEGRADED, message="Rate limiting disabled")
    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


@router.get("/health", include_in_schema=False)
def health() -> dict:
    """Liveness: the process is up."""
    return {"status": HealthStatus.HEALTHY.value}


@router.get("/ready", include_in_schema=False)
def ready(db: Session = Depends(get_db)) -> JSONResponse:
    """Readiness: database reachable; Redis optional."""
    components = {"database": check_database_health(db), "redis": check_redis_health()}
    if components["database"].status is HealthStatus.UNHEALTHY:
        overall = HealthStatus.UNHEALTHY
    elif any(c.status is not HealthStatus.HEALTHY for c in components.values()):
        overall = HealthStatus.DEGRADED
    else:
        overall = HealthStatus.HEALTHY

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if overall is HealthStatus.UNHEALTHY else status.HTTP_200_OK,
        content={
            "status": overall.value,
            "components": {
                name: {"status": c.status.value, "message": c.message, "latency_ms": c.latency_ms}
                for name, c in components.items()
            },
        },
    )
