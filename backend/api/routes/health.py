"""Health check endpoints.

Provides:
- Basic liveness probe (/health/)
- Dependency check (/health/ready)
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("/", response_model=dict[str, Any])
async def root() -> dict[str, Any]:
    """
    Application name and version. Used as a liveness probe.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "started_at": _start_datetime,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


@router.get("/ready")
async def readiness(request: Request):
    """
    Readiness probe. Pings the database and reports in-flight runs.
    Returns 503 if the database is unreachable.
    """
    checks: dict[str, str] = {}

    try:
        from db.session import engine as db_engine

        async with db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    listener = getattr(request.app.state, "event_listener", None)
    checks["event_bus"] = "running" if listener and listener.is_running else "disabled"

    engine = getattr(request.app.state, "engine", None)
    body = {
        "status": "ok" if checks["database"] == "ok" else "degraded",
        "checks": checks,
        "running_executions": len(engine.get_running_executions()) if engine else 0,
    }
    return JSONResponse(status_code=200 if body["status"] == "ok" else 503, content=body)
