"""Constants and enums for the workflow engine."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LogLevel(str, Enum):
    """Log level for workflow log rows."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class StepType(str, Enum):
    """Closed set of step kinds a workflow may contain.

    New kinds are added here and must get an executor in
    ``tasks.registry.build_default_registry``.
    """

    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    WEBHOOK = "webhook"
    EMAIL = "email"
    NOTIFICATION = "notification"
    GPT = "gpt"


class ConditionOperator(str, Enum):
    """Operators understood by the condition evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"


class ExecutionMode(str, Enum):
    """How the orchestrator walks the step list."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class NotificationPriority(str, Enum):
    """Priority of an in-app notification."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
