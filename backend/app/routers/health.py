"""Health check endpoints for load balancers and monitoring."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Lightweight liveness check (no DB access)."""
    return {
        "status": "ok",
        "service": "sgg-actions",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": request.app.state.settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: 200 only when the database answers."""
    checks = {"service": "ok", "database": "unknown"}
    healthy = True

    try:
        await request.app.state.database.ping()
        checks["database"] = "ok"
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        checks["database"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": "sgg-actions",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
