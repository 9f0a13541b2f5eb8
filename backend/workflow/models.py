"""Runtime types for workflow execution.

Definitions are parsed once per run into immutable step objects; the
``ExecutionContext`` is the only mutable state a run carries.

Step definition (as stored in ``Workflow.steps``):
{
    "id": "notify_finance",
    "name": "Notify finance",
    "type": "email",
    "configuration": {"to": "{{triggerData.owner_email}}", "subject": "Invoice {{triggerData.number}}"},
    "conditions": {"triggerData.amount": {"operator": "greater_than", "value": 1000}},
    "timeout": 30,
    "retryCount": 2,
    "retryDelay": 10
}
"""

import asyncio
import copy
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from core.constants import ExecutionStatus, StepType
from core.exceptions import InvalidDefinitionError

StepResult = dict[str, Any]


def new_execution_id(prefix: str = "exec") -> str:
    """Build a run identifier: ``<prefix>_<epoch ms>_<random suffix>``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """Return the first present key. Builder payloads use camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


# ─── Definition ───────────────────────────────────────────────

@dataclass(frozen=True)
class WorkflowStep:
    """One typed unit of work."""

    id: str
    type: StepType
    name: str = ""
    configuration: dict[str, Any] = field(default_factory=dict)
    conditions: Optional[dict[str, Any]] = None
    timeout: Optional[float] = None
    retry_count: int = 0
    retry_delay: Optional[float] = None
    retry_backoff: str = "fixed"

    @property
    def next_step_id(self) -> Optional[str]:
        return _pick(self.configuration, "next_step_id", "nextStepId")

    @property
    def else_step_id(self) -> Optional[str]:
        return _pick(self.configuration, "else_step_id", "elseStepId")

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowStep":
        """Parse a stored step definition.

        Raises:
            InvalidDefinitionError: Missing id or unknown step type
        """
        if not isinstance(data, dict) or not data.get("id"):
            raise InvalidDefinitionError("Every step needs an id")
        step_id = str(data["id"])
        try:
            step_type = StepType(data.get("type"))
        except ValueError:
            raise InvalidDefinitionError(f"Step {step_id} has unknown type {data.get('type')!r}")

        backoff = _pick(data, "retry_backoff", "retryBackoff", default="fixed")
        if backoff not in ("fixed", "linear", "exponential"):
            raise InvalidDefinitionError(f"Step {step_id} has unknown retry backoff {backoff!r}")

        timeout = _pick(data, "timeout")
        retry_delay = _pick(data, "retry_delay", "retryDelay")
        return cls(
            id=step_id,
            type=step_type,
            name=data.get("name") or step_id,
            configuration=dict(_pick(data, "configuration", "config", default={})),
            conditions=data.get("conditions") or None,
            timeout=float(timeout) if timeout is not None else None,
            retry_count=max(0, int(_pick(data, "retry_count", "retryCount", default=0))),
            retry_delay=float(retry_delay) if retry_delay is not None else None,
            retry_backoff=backoff,
        )


@dataclass(frozen=True)
class WorkflowDefinition:
    """Immutable per-run view of a stored workflow."""

    id: str
    user_id: str
    steps: tuple[WorkflowStep, ...]
    name: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True

    def __post_init__(self):
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise InvalidDefinitionError(f"Duplicate step id {step.id!r} in workflow {self.id}")
            seen.add(step.id)

    def index_of(self, step_id: Optional[str]) -> int:
        """Position of ``step_id`` in the step list, or -1."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return -1

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowDefinition":
        return cls(
            id=str(data["id"]),
            user_id=str(_pick(data, "user_id", "userId", default="")),
            name=data.get("name", ""),
            steps=tuple(WorkflowStep.from_dict(s) for s in data.get("steps") or []),
            variables=dict(data.get("variables") or {}),
            is_active=bool(_pick(data, "is_active", "isActive", default=True)),
        )


# ─── Execution Context ────────────────────────────────────────

@dataclass
class ExecutionContext:
    """Mutable state for a single run. Never shared across runs."""

    workflow_id: str
    execution_id: str
    user_id: str
    trigger_data: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    step_results: dict[str, StepResult] = field(default_factory=dict)
    current_step: Optional[str] = None
    start_time: float = field(default_factory=time.monotonic)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def elapsed_ms(self) -> int:
        return max(0, int((time.monotonic() - self.start_time) * 1000))

    def merge_variables(self, values: Optional[dict[str, Any]]) -> None:
        if values:
            self.variables.update(values)

    def record_result(self, step_id: str, result: StepResult) -> None:
        """Store a step's final result, keeping its retry counter."""
        retries = self.step_results.get(step_id, {}).get("retry_count", 0)
        self.step_results[step_id] = {**result, "retry_count": retries}

    def record_retry(self, step_id: str) -> int:
        """Increment the retry counter for ``step_id`` in place."""
        entry = self.step_results.setdefault(step_id, {})
        entry["retry_count"] = entry.get("retry_count", 0) + 1
        return entry["retry_count"]

    def fork(self) -> "ExecutionContext":
        """Private copy for a parallel branch; merged back at the join."""
        return ExecutionContext(
            workflow_id=self.workflow_id,
            execution_id=self.execution_id,
            user_id=self.user_id,
            trigger_data=self.trigger_data,
            variables=copy.deepcopy(self.variables),
            step_results=copy.deepcopy(self.step_results),
            current_step=self.current_step,
            start_time=self.start_time,
            started_at=self.started_at,
            cancel_event=self.cancel_event,
        )

    def as_namespace(self) -> dict[str, Any]:
        """Lookup root for ``{{path}}`` tokens and condition paths."""
        return {
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "user_id": self.user_id,
            "trigger_data": self.trigger_data,
            "variables": self.variables,
            "step_results": self.step_results,
            "current_step": self.current_step,
            "workflowId": self.workflow_id,
            "executionId": self.execution_id,
            "userId": self.user_id,
            "triggerData": self.trigger_data,
            "stepResults": self.step_results,
            "currentStep": self.current_step,
        }


# ─── Results ──────────────────────────────────────────────────

@dataclass(frozen=True)
class WorkflowResult:
    """Outcome of one run."""

    success: bool
    execution_id: str
    output: dict[str, Any] = field(default_factory=dict)
    duration: int = 0
    error: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "execution_id": self.execution_id,
            "output": self.output,
            "duration": self.duration,
            "error": self.error,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class Trigger:
    """Stored rule mapping an inbound event to a workflow."""

    id: str
    event_type: str
    workflow_id: str
    user_id: str
    conditions: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
