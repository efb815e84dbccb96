"""
Executor module - in-process runtime for workflows.

This module contains the execution components:
- instance: WorkflowInstance (one running workflow)
- activity: execute_activity under an ActivityPolicy
- scope: cooperative CancellationScope
- signal: handler registration and wait_condition
- child: child workflows with parent-close policies
- outcome: Completed / Failed / Cancelled / Terminated
- dag: schema graph helpers
"""

from pyflownodes.executor.activity import execute_activity
from pyflownodes.executor.child import (
    ChildWorkflowHandle,
    execute_child_workflow,
    start_child_workflow,
)
from pyflownodes.executor.dag import DagSummary, next_nodes, starting_nodes, summarize
from pyflownodes.executor.instance import WorkflowInstance, upsert_search_attributes
from pyflownodes.executor.outcome import (
    Cancelled,
    Completed,
    Failed,
    Terminated,
    WorkflowOutcome,
)
from pyflownodes.executor.scope import CancellationScope, check_cancellation
from pyflownodes.executor.signal import set_query_handler, set_signal_handler, wait_condition

__all__ = [
    "CancellationScope",
    "Cancelled",
    "ChildWorkflowHandle",
    "Completed",
    "DagSummary",
    "Failed",
    "Terminated",
    "WorkflowInstance",
    "WorkflowOutcome",
    "check_cancellation",
    "execute_activity",
    "execute_child_workflow",
    "next_nodes",
    "set_query_handler",
    "set_signal_handler",
    "start_child_workflow",
    "starting_nodes",
    "summarize",
    "upsert_search_attributes",
    "wait_condition",
]
