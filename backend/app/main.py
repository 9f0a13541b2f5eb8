"""FinOps Workflow Engine - FastAPI Application."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from api.v1.router import api_v1_router
from api.routes import health
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.session import AsyncSessionLocal, close_db, init_db
from integrations.claude_client import ClaudeQueryService
from integrations.notifications import DatabaseNotificationCreator
from integrations.resend_email import ResendEmailSender
from services.workflow_service import SqlWorkflowRepository
from tasks.registry import build_default_registry
from triggers.event_bus import EventBusListener
from triggers.matcher import TriggerMatcher
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    settings = get_settings()
    setup_logging()
    await init_db()

    http_client = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT)
    claude = ClaudeQueryService(http_client, settings)
    if claude.is_configured:
        logger.info(f"Claude AI configured (model: {settings.CLAUDE_MODEL})")
    else:
        logger.info("Claude AI not configured (set ANTHROPIC_API_KEY to enable gpt steps)")

    executors = build_default_registry(
        http_client=http_client,
        email_sender=ResendEmailSender(http_client, settings),
        notification_creator=DatabaseNotificationCreator(AsyncSessionLocal),
        ai_service=claude,
        settings=settings,
    )
    repository = SqlWorkflowRepository(AsyncSessionLocal)
    engine = WorkflowEngine(repository, executors, settings)
    matcher = TriggerMatcher(repository, engine)

    app.state.http_client = http_client
    app.state.repository = repository
    app.state.engine = engine
    app.state.matcher = matcher
    app.state.event_listener = None
    logger.info(f"Workflow engine ready ({len(executors.available_types)} step types)")

    if settings.EVENT_BUS_ENABLED:
        listener = EventBusListener(matcher, settings=settings)
        try:
            await listener.start()
            app.state.event_listener = listener
        except Exception as e:
            logger.warning(f"Event bus listener not started: {e}")

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started ({settings.ENVIRONMENT})")
    yield
    # Shutdown
    if app.state.event_listener is not None:
        await app.state.event_listener.stop()
    await http_client.aclose()
    await close_db()
    logger.info("Application shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Workflow automation for the FinOps dashboard: event-triggered "
                    "step pipelines with retries, branching and an audit trail.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-User-Id", "X-Request-ID"],
    )

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers / k8s probes)
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # Versioned API, all business endpoints under /api/v1
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
