"""
Core runtime types shared by workflows and activities.

- WorkflowContext / WorkflowInfo: task-local state of a workflow instance
- ActivityContext / ActivityInfo: task-local state of an activity attempt
- workflow_now(): deterministic workflow time
- heartbeat(): activity liveness reporting
"""

from pyflownodes.core.context import (
    ACTIVITY_CONTEXT,
    CANCELLATION_SCOPE,
    WORKFLOW_CONTEXT,
    ActivityContext,
    ActivityInfo,
    WorkflowContext,
    WorkflowInfo,
    get_activity_context,
    get_workflow_context,
    heartbeat,
    in_workflow,
    workflow_info,
    workflow_now,
)

__all__ = [
    "ACTIVITY_CONTEXT",
    "CANCELLATION_SCOPE",
    "WORKFLOW_CONTEXT",
    "ActivityContext",
    "ActivityInfo",
    "WorkflowContext",
    "WorkflowInfo",
    "get_activity_context",
    "get_workflow_context",
    "heartbeat",
    "in_workflow",
    "workflow_info",
    "workflow_now",
]
