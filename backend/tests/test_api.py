"""HTTP API tests against the ASGI app."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import create_app

USER = "user-1"
HEADERS = {"X-User-Id": USER}


@pytest_asyncio.fixture
async def client(engine, matcher, repository):
    """App wired to the test engine; the lifespan is not run."""
    app = create_app()
    app.state.engine = engine
    app.state.matcher = matcher
    app.state.repository = repository
    app.state.event_listener = None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def action(step_id: str, action_type: str = "set_variables") -> dict:
    return {
        "id": step_id,
        "name": step_id,
        "type": "action",
        "configuration": {"action_type": action_type, "parameters": {"ref": "{{triggerData.ref}}"}},
    }


@pytest.mark.integration
class TestWorkflowRoutes:
    async def test_execute(self, client, create_workflow):
        wf = await create_workflow([action("a")])

        resp = await client.post(f"/api/v1/workflows/{wf}/execute", json={"trigger_data": {"ref": "R-1"}}, headers=HEADERS)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["status"] == "completed"
        assert data["output"]["a"]["variables"] == {"ref": "R-1"}
        assert data["execution_id"].startswith("exec_")

    async def test_failed_run_is_still_200(self, client, create_workflow):
        wf = await create_workflow([action("a", action_type="nope")])

        resp = await client.post(f"/api/v1/workflows/{wf}/execute", json={}, headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["status"] == "failed"
        assert resp.json()["error"] == "Unknown action type 'nope'"

    async def test_parallel_failure_is_reported_per_step(self, client, create_workflow):
        wf = await create_workflow([action("a", action_type="nope"), action("b")])

        resp = await client.post(f"/api/v1/workflows/{wf}/execute", json={"parallel": True}, headers=HEADERS)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["output"]["a"] == {"error": "Unknown action type 'nope'", "success": False}
        assert data["output"]["b"]["success"] is True

    async def test_missing_user_header(self, client, create_workflow):
        wf = await create_workflow([action("a")])

        resp = await client.post(f"/api/v1/workflows/{wf}/execute", json={})

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing X-User-Id header"
        assert resp.headers["X-Request-ID"]

    async def test_dry_run(self, client, create_workflow):
        wf = await create_workflow([action("a")], is_active=False)

        resp = await client.post(f"/api/v1/workflows/{wf}/test", json={"test_data": {"ref": "T"}}, headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json()["execution_id"].startswith("test_")
        assert resp.json()["success"] is True

    async def test_history(self, client, create_workflow):
        wf = await create_workflow([action("a")])
        await client.post(f"/api/v1/workflows/{wf}/execute", json={}, headers=HEADERS)

        resp = await client.get(f"/api/v1/workflows/{wf}/executions", params={"limit": 10}, headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        assert resp.json()["executions"][0]["status"] == "completed"


@pytest.mark.integration
class TestExecutionRoutes:
    async def test_detail_with_logs(self, client, create_workflow):
        wf = await create_workflow([action("a")])
        run = (await client.post(f"/api/v1/workflows/{wf}/execute", json={}, headers=HEADERS)).json()

        resp = await client.get(f"/api/v1/executions/{run['execution_id']}", headers=HEADERS)

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["duration_ms"] == run["duration"]
        assert [log["message"] for log in data["logs"]][0] == "Workflow execution started"
        assert len(data["logs"]) == 4

    async def test_unknown_execution(self, client):
        resp = await client.get("/api/v1/executions/exec_0_nothing", headers=HEADERS)
        assert resp.status_code == 404

    async def test_cancel_not_running(self, client):
        resp = await client.post("/api/v1/executions/exec_0_nothing/cancel", headers=HEADERS)
        assert resp.status_code == 404

    async def test_running_list_empty(self, client):
        resp = await client.get("/api/v1/executions/running", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json() == []


@pytest.mark.integration
class TestEventRoutes:
    async def test_dispatch(self, client, create_workflow, create_trigger):
        wf = await create_workflow([action("a")])
        await create_trigger(wf, "invoice.created")

        resp = await client.post(
            "/api/v1/events/",
            json={"event_type": "invoice.created", "entity_data": {"ref": "INV-2"}},
            headers=HEADERS,
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["started"] == 1
        assert data["results"][0]["output"]["a"]["variables"] == {"ref": "INV-2"}

    async def test_emit(self, client, create_workflow, create_trigger):
        wf = await create_workflow([action("a")])
        await create_trigger(wf, "client.updated")

        resp = await client.post(
            "/api/v1/events/emit",
            json={"event_type": "client.updated", "entity_id": "c1", "entity_type": "client", "payload": {"ref": "X"}},
            headers=HEADERS,
        )

        assert resp.status_code == 200
        assert resp.json()["started"] == 1

    async def test_blank_event_type_rejected(self, client):
        resp = await client.post("/api/v1/events/", json={"event_type": ""}, headers=HEADERS)
        assert resp.status_code == 422


@pytest.mark.integration
class TestHealth:
    async def test_liveness(self, client):
        resp = await client.get("/api/health/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
