"""Health check endpoints"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.config import settings
from etuition.db.database import get_db
from etuition.db.models import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()

SERVICE_NAME = "eTuition API"
SERVICE_VERSION = "0.1.0"


@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Readiness check including database connectivity"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "payments": "enabled" if settings.is_payments_configured() else "disabled",
        "identity": "enabled" if settings.is_firebase_configured() else "disabled",
    }

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = "healthy" if result.scalar() == 1 else "unhealthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"

    overall_status = "unhealthy" if checks["database"] == "unhealthy" else "healthy"
    return JSONResponse(
        status_code=503 if overall_status == "unhealthy" else 200,
        content={
            "status": overall_status,
            "timestamp": utcnow().isoformat(),
            "checks": checks,
        },
    )


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe endpoint"""
    return {"status": "alive"}
