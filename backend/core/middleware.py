"""FastAPI middleware and exception handlers.

Adds:
- X-Request-ID header (generated if not provided), bound into log context
- X-Process-Time header (request duration)
- One log line per request
- JSON error bodies for engine exceptions
"""

import logging
import time
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import WorkflowEngineError

logger = logging.getLogger(__name__)

_QUIET_PATHS = ("/api/health", "/api/health/")


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request ID and timing to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id
        start_time = time.monotonic()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.error(
                    f"Unhandled exception on {request.method} {request.url.path} ({duration_ms:.0f}ms): {exc}",
                    exc_info=True,
                )
                detail = "Internal server error" if get_settings().is_production else (str(exc) or "Internal server error")
                return JSONResponse(
                    status_code=500,
                    content={"detail": detail, "request_id": request_id},
                    headers={"X-Request-ID": request_id},
                )

            duration_ms = (time.monotonic() - start_time) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

            if request.url.path not in _QUIET_PATHS:
                log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
                logger.log(
                    log_level,
                    f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)",
                )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(WorkflowEngineError)
    async def engine_error_handler(request: Request, exc: WorkflowEngineError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "request_id": getattr(request.state, "request_id", None)},
        )
