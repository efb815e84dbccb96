"""
FlowNodes: in-process workflow orchestration for Python

Two workflow families run on one asyncio runtime:
- an order saga (payment, parallel inventory updates, compensation,
  detached notification child) with signals, queries and cancellation
- a schema interpreter that walks a DAG of typed integration nodes
  (SendGrid, Postgres, webhooks) in sequential or parallel mode

Design Pattern: Façade Pattern
This module re-exports the public surface so applications import from
``pyflownodes`` alone.

Example:
    ```python
    import asyncio
    from pyflownodes import Client, OrderActivities, OrderWorkflow, NotificationWorkflow, Worker

    async def main():
        async with Worker(
            workflows=[OrderWorkflow, NotificationWorkflow],
            activities=[OrderActivities()],
        ) as worker:
            client = Client(worker)
            result = await client.execute_workflow(
                OrderWorkflow,
                "order-1",
                "user-1",
                [{"product_id": "p-1", "quantity": 2}],
                "49.90",
                id="order-1",
            )
            print(result)

    asyncio.run(main())
    ```
"""

# Activities
from pyflownodes.activities import NodeExecutorRegistry, NodeExecutors, OrderActivities

# Client and worker
from pyflownodes.client import Client, WorkflowHandle
from pyflownodes.config import WorkerSettings, configure_logging

# Context helpers
from pyflownodes.core import heartbeat, workflow_info, workflow_now

# Decorators
from pyflownodes.decorators import activity, query, run, signal, workflow_type

# Errors
from pyflownodes.errors import (
    ActivityFailure,
    ActivityTimeoutError,
    ApplicationError,
    CancellationRequested,
    DatabaseError,
    EmailError,
    FlowNodesError,
    InventoryError,
    NodeConfigurationError,
    NodeExecutionError,
    PaymentError,
    QueryNotFoundError,
    UnsupportedNodeType,
    ValidationError,
    WebhookError,
    WorkflowAlreadyStartedError,
    WorkflowFailureError,
    WorkflowNotFoundError,
)

# Workflow-side runtime API
from pyflownodes.executor import (
    CancellationScope,
    execute_activity,
    execute_child_workflow,
    set_query_handler,
    set_signal_handler,
    start_child_workflow,
    upsert_search_attributes,
    wait_condition,
)

# Models
from pyflownodes.models import (
    ActivityPolicy,
    ExecutionMode,
    NodeResult,
    OrderItem,
    OrderPolicies,
    OrderState,
    OrderStatus,
    ParentClosePolicy,
    RetryPolicy,
    WorkflowExecution,
    WorkflowSchema,
    WorkflowStatus,
)

# Storage (Adapter pattern)
from pyflownodes.storage import InMemoryWorkflowStore, VisibilityQuery, WorkflowStore, create_store
from pyflownodes.worker import Worker

# Workflows
from pyflownodes.workflows import (
    GreetingWorkflow,
    MessageWorkflow,
    NotificationWorkflow,
    OrderWorkflow,
    SchemaWorkflow,
    VersionedWorkflow,
)

__version__ = "0.1.0"

__all__ = [
    # Activities
    "NodeExecutorRegistry",
    "NodeExecutors",
    "OrderActivities",
    # Client and worker
    "Client",
    "Worker",
    "WorkerSettings",
    "WorkflowHandle",
    "configure_logging",
    # Context helpers
    "heartbeat",
    "workflow_info",
    "workflow_now",
    # Decorators
    "activity",
    "query",
    "run",
    "signal",
    "workflow_type",
    # Errors
    "ActivityFailure",
    "ActivityTimeoutError",
    "ApplicationError",
    "CancellationRequested",
    "DatabaseError",
    "EmailError",
    "FlowNodesError",
    "InventoryError",
    "NodeConfigurationError",
    "NodeExecutionError",
    "PaymentError",
    "QueryNotFoundError",
    "UnsupportedNodeType",
    "ValidationError",
    "WebhookError",
    "WorkflowAlreadyStartedError",
    "WorkflowFailureError",
    "WorkflowNotFoundError",
    # Runtime API
    "CancellationScope",
    "execute_activity",
    "execute_child_workflow",
    "set_query_handler",
    "set_signal_handler",
    "start_child_workflow",
    "upsert_search_attributes",
    "wait_condition",
    # Models
    "ActivityPolicy",
    "ExecutionMode",
    "NodeResult",
    "OrderItem",
    "OrderPolicies",
    "OrderState",
    "OrderStatus",
    "ParentClosePolicy",
    "RetryPolicy",
    "WorkflowExecution",
    "WorkflowSchema",
    "WorkflowStatus",
    # Storage
    "InMemoryWorkflowStore",
    "VisibilityQuery",
    "WorkflowStore",
    "create_store",
    # Workflows
    "GreetingWorkflow",
    "MessageWorkflow",
    "NotificationWorkflow",
    "OrderWorkflow",
    "SchemaWorkflow",
    "VersionedWorkflow",
]
