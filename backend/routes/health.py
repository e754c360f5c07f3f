# Health check endpoints for system monitoring

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
import logging

from core.database import db_manager

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)

SERVICE_NAME = "ekom-backend"


class HealthStatus:
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@router.get("")
async def health_check():
    """
    Basic liveness check - returns 200 if the service is running
    """
    return {
        "status": HealthStatus.HEALTHY,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
    }


@router.get("/ready")
async def readiness_check():
    """Readiness check - the database must answer a trivial query"""
    database = await db_manager.health_check()
    database_ok = database["status"] == HealthStatus.HEALTHY
    status = HealthStatus.HEALTHY if database_ok else HealthStatus.UNHEALTHY
    if not database_ok:
        logger.warning(f"Readiness check failed: database {database['status']}")
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "components": {"database": database},
        },
    )
