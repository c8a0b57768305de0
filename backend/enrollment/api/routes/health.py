"""Health Routes — liveness and readiness for the enrollment API.

Invariants:
    - /health/ answers 200 while the process serves requests, without touching the database
    - /health/ready answers 503 until the session manager exists and SELECT 1 succeeds
    - /health/ready also reports how many workspaces are open in this process
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from enrollment.api.routes.workspace_helpers import open_workspace_count
from enrollment.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE_NAME = "program-enrollment-api"


@router.get("/", status_code=status.HTTP_200_OK)
async def liveness():
    return {"status": "healthy", "service": SERVICE_NAME, "version": "1.0.0"}


@router.get("/ready")
async def readiness():
    manager = database.db_manager
    if manager is None or not await manager.health_check():
        logger.warning("Readiness check failed: database unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable"},
        )
    return {
        "status": "ready",
        "checks": {"database": "healthy"},
        "open_workspaces": open_workspace_count(),
    }
