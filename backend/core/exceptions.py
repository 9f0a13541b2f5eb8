"""Custom exceptions for the workflow engine."""

from typing import Optional


class WorkflowEngineError(Exception):
    """Base exception for the workflow engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(WorkflowEngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class DefinitionNotFoundError(NotFoundError):
    """The workflow does not exist, belongs to someone else, or is inactive."""

    def __init__(self, message: str = "Workflow not found or inactive"):
        super().__init__(message)


class InvalidDefinitionError(WorkflowEngineError):
    """A stored workflow definition cannot be interpreted."""

    def __init__(self, message: str = "Invalid workflow definition"):
        """Initialize InvalidDefinitionError with 422 status code."""
        super().__init__(message, 422)


class StepExecutionError(WorkflowEngineError):
    """A step failed. Wraps whatever the collaborator raised."""

    def __init__(self, message: str, step_id: Optional[str] = None):
        """Initialize StepExecutionError.

        Args:
            message: Failure description
            step_id: Id of the failing step, when known
        """
        self.step_id = step_id
        super().__init__(message, 500)


class StepTimeoutError(StepExecutionError):
    """A step attempt ran past its deadline. Retryable."""

    def __init__(self, step_id: Optional[str], timeout: float):
        self.timeout = timeout
        super().__init__(f"Step timed out after {timeout}s", step_id)


class RetryExhaustedError(StepExecutionError):
    """A step kept failing after every allowed attempt."""

    def __init__(self, message: str, step_id: Optional[str], attempts: int):
        self.attempts = attempts
        super().__init__(message, step_id)


class ExecutionCancelledError(WorkflowEngineError):
    """A running execution was cancelled by the caller."""

    def __init__(self, message: str = "Execution cancelled"):
        super().__init__(message, 409)


class InterpolationMiss(KeyError):
    """A ``{{path}}`` token did not resolve. Never escapes the interpolator."""


class UnauthorizedError(WorkflowEngineError):
    """Caller identity missing."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize UnauthorizedError with 401 status code."""
        super().__init__(message, 401)
