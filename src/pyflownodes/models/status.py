"""Status enumerations for workflow execution tracking.

Defines lifecycle states for order sagas, workflow executions as seen by
the visibility store, and the enums that steer schema execution and child
workflow lifetimes.
"""

from enum import Enum


class OrderStatus(Enum):
    """Status of an order saga.

    Lifecycle:
        PROCESSING → PROCESSING_PAYMENT → UPDATING_INVENTORY → COMPLETED
                                ↓                   ↓
                         PAYMENT_FAILED     INVENTORY_FAILED

    CANCELLED may be entered from any non-terminal state.
    """

    PROCESSING = "PROCESSING"
    PROCESSING_PAYMENT = "PROCESSING_PAYMENT"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    UPDATING_INVENTORY = "UPDATING_INVENTORY"
    INVENTORY_FAILED = "INVENTORY_FAILED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Check if this status ends the saga."""
        return self in (
            OrderStatus.PAYMENT_FAILED,
            OrderStatus.INVENTORY_FAILED,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
        )

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(Enum):
    """Status of a workflow execution.

    Lifecycle:
        RUNNING → COMPLETED / FAILED / CANCELLED / TERMINATED
    """

    RUNNING = "RUNNING"
    """Workflow task is executing or suspended at an await."""

    COMPLETED = "COMPLETED"
    """Workflow returned a result."""

    FAILED = "FAILED"
    """Workflow raised an error."""

    CANCELLED = "CANCELLED"
    """Workflow unwound after a cancellation request."""

    TERMINATED = "TERMINATED"
    """Workflow was stopped by worker shutdown."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no more work happens)."""
        return self != WorkflowStatus.RUNNING

    def __str__(self) -> str:
        return self.value


class ExecutionMode(Enum):
    """How a schema node's children (and the starting nodes) are invoked."""

    SEQUENTIAL = "sequential"
    """One child at a time, in edge-declaration order."""

    PARALLEL = "parallel"
    """All children concurrently, joined before returning."""

    def __str__(self) -> str:
        return self.value


class ParentClosePolicy(Enum):
    """What happens to a running child workflow when its parent closes."""

    ABANDON = "ABANDON"
    """Child keeps running independently."""

    TERMINATE = "TERMINATE"
    """Child is stopped immediately."""

    REQUEST_CANCEL = "REQUEST_CANCEL"
    """Child receives a cooperative cancellation request."""

    def __str__(self) -> str:
        return self.value
