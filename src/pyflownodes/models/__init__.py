"""Core data models for order sagas and schema workflows.

Defines the order saga state, workflow schemas, invocation policies,
visibility records and status enums.

Design: Dependency-Free Models
These types depend only on pyflownodes.errors, never on the runtime or
storage modules, to prevent circular imports and keep layering clean.
"""

from pyflownodes.models.execution import WorkflowExecution
from pyflownodes.models.order import OrderItem, OrderProgress, OrderState
from pyflownodes.models.result import NodeResult
from pyflownodes.models.retry import ActivityPolicy, OrderPolicies, RetryPolicy
from pyflownodes.models.schema import (
    ExecutionSettings,
    SchemaRetryPolicy,
    WorkflowEdge,
    WorkflowNode,
    WorkflowSchema,
    parse_duration,
)
from pyflownodes.models.status import (
    ExecutionMode,
    OrderStatus,
    ParentClosePolicy,
    WorkflowStatus,
)

__all__ = [
    "ActivityPolicy",
    "ExecutionMode",
    "ExecutionSettings",
    "NodeResult",
    "OrderItem",
    "OrderPolicies",
    "OrderProgress",
    "OrderState",
    "OrderStatus",
    "ParentClosePolicy",
    "RetryPolicy",
    "SchemaRetryPolicy",
    "WorkflowEdge",
    "WorkflowExecution",
    "WorkflowNode",
    "WorkflowSchema",
    "WorkflowStatus",
    "parse_duration",
]
