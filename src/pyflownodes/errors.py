"""
Error taxonomy for workflows, activities and the runtime.

Design Pattern: Exception Hierarchy
Every error raised by pyflownodes derives from FlowNodesError, so callers can
catch the whole family at once. Errors that cross the activity boundary
implement ``is_retryable()``; the activity invoker uses it (together with the
policy's non-retryable type names) to decide whether to try again.

Classification by the activity invoker:
- ``type`` attribute (or class name) listed in the policy's
  ``non_retryable_error_types``: fail immediately
- ``is_retryable()`` returning False: fail immediately
- anything else: retry with backoff until attempts run out
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class FlowNodesError(Exception):
    """Base class for all pyflownodes errors."""


class ApplicationError(FlowNodesError):
    """
    Business-level failure raised by workflow or activity code.

    Example:
        ```python
        raise ApplicationError("Payment failed: card declined", type="PAYMENT_FAILED")

        # Permanent failure, never retried
        raise ApplicationError("Unknown customer", non_retryable=True)
        ```

    Attributes:
        message: Human-readable message
        type: Error type name used for non-retryable classification
        non_retryable: Whether the invoker must give up immediately
        details: Extra values carried with the error
    """

    def __init__(
        self,
        message: str,
        type: str | None = None,
        non_retryable: bool = False,
        details: Sequence[Any] = (),
    ):
        super().__init__(message)
        self.message = message
        self.type = type
        self.non_retryable = non_retryable
        self.details = tuple(details)

    def is_retryable(self) -> bool:
        return not self.non_retryable

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, type={self.type!r}, "
            f"non_retryable={self.non_retryable})"
        )


class PaymentError(ApplicationError):
    """Payment was declined or the request was invalid."""

    def __init__(self, message: str, details: Sequence[Any] = ()):
        super().__init__(message, type="PAYMENT_ERROR", details=details)


class InventoryError(ApplicationError):
    """Inventory could not be reserved."""

    def __init__(self, message: str, details: Sequence[Any] = ()):
        super().__init__(message, type="INVENTORY_ERROR", details=details)


class ValidationError(FlowNodesError):
    """Input failed validation (schema, order item, node configuration)."""

    def is_retryable(self) -> bool:
        return False


class UnsupportedNodeType(ValidationError):  # noqa: N818
    """A schema node names a type with no registered executor."""

    def __init__(self, node_type: str):
        super().__init__(f"Unsupported node type: {node_type}")
        self.node_type = node_type


# =============================================================================
# Activity invocation
# =============================================================================


class ActivityTimeoutError(FlowNodesError):
    """
    An activity attempt exceeded its start-to-close or heartbeat timeout.

    Attributes:
        timeout_type: "START_TO_CLOSE" or "HEARTBEAT"
    """

    def __init__(self, activity_type: str, timeout_type: str, timeout: float):
        super().__init__(
            f"Activity {activity_type} timed out ({timeout_type} after {timeout:g}s)"
        )
        self.activity_type = activity_type
        self.timeout_type = timeout_type
        self.timeout = timeout

    def is_retryable(self) -> bool:
        return True


class ActivityFailure(FlowNodesError):
    """
    An activity failed for good: attempts exhausted or a non-retryable error.

    The original error is available as ``cause`` and as ``__cause__``;
    ``str()`` returns the cause's message so workflows can embed it directly.

    Attributes:
        activity_type: Registered activity name
        attempts: Number of attempts made
        cause: Last error raised by the activity
        retry_state: "MAXIMUM_ATTEMPTS_REACHED" or "NON_RETRYABLE_FAILURE"
    """

    def __init__(
        self, activity_type: str, attempts: int, cause: BaseException, retry_state: str
    ):
        super().__init__(str(cause))
        self.activity_type = activity_type
        self.attempts = attempts
        self.cause = cause
        self.retry_state = retry_state

    def __str__(self) -> str:
        return str(self.cause)

    def __repr__(self) -> str:
        return (
            f"ActivityFailure(activity_type={self.activity_type!r}, attempts={self.attempts}, "
            f"cause={self.cause!r}, retry_state={self.retry_state!r})"
        )


class CancellationRequested(FlowNodesError):  # noqa: N818
    """The enclosing cancellation scope was cancelled at a suspension point."""

    def __init__(self, message: str = "Cancellation requested"):
        super().__init__(message)


# =============================================================================
# Node executors
# =============================================================================


class NodeExecutionError(FlowNodesError):
    """
    A node executor failed while talking to its external system.

    Retryable: the schema policy decides how many attempts are made.
    """

    def __init__(self, message: str, node_type: str | None = None):
        super().__init__(message)
        self.message = message
        self.node_type = node_type

    def is_retryable(self) -> bool:
        return True


class EmailError(NodeExecutionError):
    def __init__(self, message: str):
        super().__init__(message, node_type="sendgrid")


class DatabaseError(NodeExecutionError):
    def __init__(self, message: str):
        super().__init__(message, node_type="postgres")


class WebhookError(NodeExecutionError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, node_type="webhook")
        self.status_code = status_code


class NodeConfigurationError(ValidationError):
    """Node data is missing required fields or holds invalid values."""


# =============================================================================
# Runtime
# =============================================================================


class WorkflowAlreadyStartedError(FlowNodesError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow already running: {workflow_id}")
        self.workflow_id = workflow_id


class WorkflowNotFoundError(FlowNodesError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class QueryNotFoundError(FlowNodesError):
    def __init__(self, workflow_id: str, query_name: str):
        super().__init__(f"Workflow {workflow_id} has no query handler named {query_name!r}")
        self.workflow_id = workflow_id
        self.query_name = query_name


class WorkflowFailureError(FlowNodesError):
    """Raised by ``WorkflowHandle.result()`` when the workflow did not complete."""

    def __init__(self, workflow_id: str, status: str, cause: BaseException | None = None):
        message = f"Workflow {workflow_id} finished with status {status}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.workflow_id = workflow_id
        self.status = status
        self.cause = cause


def error_type_name(error: BaseException) -> str:
    """Type name used for non-retryable classification."""
    type_name = getattr(error, "type", None)
    if isinstance(type_name, str) and type_name:
        return type_name
    return error.__class__.__name__


def is_retryable_error(error: BaseException) -> bool:
    """Errors without ``is_retryable()`` are treated as transient."""
    check = getattr(error, "is_retryable", None)
    if callable(check):
        return bool(check())
    return True
