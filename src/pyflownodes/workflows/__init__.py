"""Workflow definitions: the order saga, the schema interpreter and small examples."""

from pyflownodes.workflows.examples import GreetingWorkflow, MessageWorkflow, VersionedWorkflow
from pyflownodes.workflows.order import NotificationWorkflow, OrderWorkflow
from pyflownodes.workflows.schema import SchemaWorkflow

__all__ = [
    "GreetingWorkflow",
    "MessageWorkflow",
    "NotificationWorkflow",
    "OrderWorkflow",
    "SchemaWorkflow",
    "VersionedWorkflow",
]
