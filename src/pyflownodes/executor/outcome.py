"""
Workflow execution outcomes.

Design Pattern: State Machine using Union types
Every workflow instance closes with exactly one outcome. The outcome decides
the status recorded in the visibility store and what
``WorkflowHandle.result()`` returns or raises.

Example:
    ```python
    outcome = await instance.wait_closed()

    match outcome:
        case Completed(result):
            print(f"Workflow completed: {result}")
        case Failed(error):
            print(f"Workflow failed: {error}")
        case Cancelled(error) | Terminated(error):
            print(f"Workflow stopped: {error}")
    ```
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pyflownodes.errors import WorkflowFailureError
from pyflownodes.models.status import WorkflowStatus

__all__ = [
    "Completed",
    "Failed",
    "Cancelled",
    "Terminated",
    "WorkflowOutcome",
    "outcome_error",
    "outcome_status",
    "unwrap_outcome",
]

R = TypeVar("R")


@dataclass(frozen=True)
class Completed(Generic[R]):
    """Workflow returned a value."""

    result: R

    def __str__(self) -> str:
        return f"Completed(result={self.result!r})"


@dataclass(frozen=True)
class Failed:
    """Workflow raised an error."""

    error: BaseException

    def __str__(self) -> str:
        return f"Failed(error={type(self.error).__name__}: {self.error})"


@dataclass(frozen=True)
class Cancelled:
    """Workflow observed a cancellation request and let it propagate."""

    error: BaseException

    def __str__(self) -> str:
        return f"Cancelled({self.error})"


@dataclass(frozen=True)
class Terminated:
    """Workflow task was stopped (parent close or worker shutdown)."""

    reason: str

    def __str__(self) -> str:
        return f"Terminated({self.reason})"


WorkflowOutcome = Completed[Any] | Failed | Cancelled | Terminated


def outcome_status(outcome: WorkflowOutcome) -> WorkflowStatus:
    """Visibility status of an outcome."""
    if isinstance(outcome, Completed):
        return WorkflowStatus.COMPLETED
    if isinstance(outcome, Failed):
        return WorkflowStatus.FAILED
    if isinstance(outcome, Cancelled):
        return WorkflowStatus.CANCELLED
    return WorkflowStatus.TERMINATED


def outcome_error(outcome: WorkflowOutcome) -> str | None:
    """Error message recorded for a non-completed outcome."""
    if isinstance(outcome, Failed | Cancelled):
        return str(outcome.error)
    if isinstance(outcome, Terminated):
        return outcome.reason
    return None


def unwrap_outcome(workflow_id: str, outcome: WorkflowOutcome) -> Any:
    """
    Return a completed workflow's result.

    Raises:
        WorkflowFailureError: For failed, cancelled or terminated workflows,
            chained from the workflow's error when there is one
    """
    if isinstance(outcome, Completed):
        return outcome.result
    status = outcome_status(outcome).value
    if isinstance(outcome, Failed | Cancelled):
        raise WorkflowFailureError(workflow_id, status, outcome.error) from outcome.error
    raise WorkflowFailureError(workflow_id, status)
