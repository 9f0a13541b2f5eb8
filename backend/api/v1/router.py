"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import events, executions, health, workflows

api_v1_router = APIRouter()

# Health (no identity required)
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Workflow runs
api_v1_router.include_router(
    workflows.router,
    prefix="/workflows",
    tags=["Workflows"],
)

# Execution history and control
api_v1_router.include_router(
    executions.router,
    prefix="/executions",
    tags=["Executions"],
)

# Business events
api_v1_router.include_router(
    events.router,
    prefix="/events",
    tags=["Events"],
)
