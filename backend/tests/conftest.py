"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- A throwaway async SQLite database per test (no server needed)
- The SQL-backed workflow repository
- Fake email, notification and AI collaborators
- A webhook endpoint served by httpx.MockTransport
- A fully wired WorkflowEngine and TriggerMatcher
"""

import os
from typing import Any, Optional
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("EVENT_BUS_ENABLED", "false")

from app.config import Settings  # noqa: E402
from db.models.trigger import WorkflowTrigger  # noqa: E402
from db.models.workflow import Workflow  # noqa: E402
from db.session import create_db_engine, create_session_factory, init_db  # noqa: E402
from integrations.base import NotificationRequest  # noqa: E402
from services.workflow_service import SqlWorkflowRepository  # noqa: E402
from tasks.registry import build_default_registry  # noqa: E402
from triggers.matcher import TriggerMatcher  # noqa: E402
from workflow.engine import WorkflowEngine  # noqa: E402

TEST_USER = "user-1"


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------

class FakeEmailSender:
    def __init__(self):
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, template_id: str) -> str:
        self.sent.append({"to": to, "subject": subject, "template": template_id})
        return f"msg_{len(self.sent)}"


class FakeNotificationCreator:
    def __init__(self):
        self.created: list[NotificationRequest] = []

    async def create(self, request: NotificationRequest) -> str:
        self.created.append(request)
        return f"notif_{len(self.created)}"


class FakeAIService:
    def __init__(self):
        self.queries: list[tuple[str, str, str]] = []

    async def query(self, query: str, user_id: str, analysis_type: str = "general") -> dict[str, Any]:
        self.queries.append((query, user_id, analysis_type))
        return {"response": f"answer to: {query}", "analysis": {"risk": "low"}, "confidence": 0.9}


class WebhookServer:
    """Records requests; ``/fail`` answers 500, everything else 200."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.startswith("/fail"):
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json={"received": True})


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    """Settings with no waiting between retries."""
    return Settings(
        WORKFLOW_DEFAULT_RETRY_DELAY=0.0,
        WORKFLOW_DEFAULT_STEP_TIMEOUT=5.0,
        WORKFLOW_MAX_STEP_EXECUTIONS=50,
        EVENT_BUS_ENABLED=False,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A file-backed SQLite database private to one test."""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'workflows.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory) -> SqlWorkflowRepository:
    return SqlWorkflowRepository(session_factory)


@pytest.fixture
def create_workflow(session_factory):
    """Insert a workflow row and return its id."""

    async def _create(
        steps: list[dict],
        user_id: str = TEST_USER,
        variables: Optional[dict] = None,
        is_active: bool = True,
        name: str = "Test workflow",
    ) -> str:
        workflow = Workflow(
            id=str(uuid4()),
            user_id=user_id,
            name=name,
            steps=steps,
            variables=variables,
            is_active=is_active,
        )
        async with session_factory() as session:
            session.add(workflow)
            await session.commit()
        return workflow.id

    return _create


@pytest.fixture
def create_trigger(session_factory):
    """Insert a trigger row and return its id."""

    async def _create(
        workflow_id: str,
        event_type: str,
        conditions: Optional[dict] = None,
        user_id: str = TEST_USER,
        is_active: bool = True,
    ) -> str:
        trigger = WorkflowTrigger(
            id=str(uuid4()),
            name=f"on {event_type}",
            event_type=event_type,
            conditions=conditions,
            workflow_id=workflow_id,
            user_id=user_id,
            is_active=is_active,
        )
        async with session_factory() as session:
            session.add(trigger)
            await session.commit()
        return trigger.id

    return _create


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def notification_creator() -> FakeNotificationCreator:
    return FakeNotificationCreator()


@pytest.fixture
def ai_service() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def webhook_server() -> WebhookServer:
    return WebhookServer()


@pytest_asyncio.fixture
async def http_client(webhook_server):
    async with httpx.AsyncClient(transport=httpx.MockTransport(webhook_server.handler)) as client:
        yield client


@pytest.fixture
def executors(http_client, email_sender, notification_creator, ai_service, settings):
    return build_default_registry(
        http_client=http_client,
        email_sender=email_sender,
        notification_creator=notification_creator,
        ai_service=ai_service,
        settings=settings,
    )


@pytest.fixture
def engine(repository, executors, settings) -> WorkflowEngine:
    return WorkflowEngine(repository, executors, settings)


@pytest.fixture
def matcher(repository, engine) -> TriggerMatcher:
    return TriggerMatcher(repository, engine)
