"""
Schema-driven DAG workflow.

SchemaWorkflow walks a WorkflowSchema from its starting nodes, invoking each
node's executor activity and then the node's successors. In sequential mode
successors run one at a time in edge order; in parallel mode they run
concurrently and are joined before the node returns. The same mode applies
to the starting nodes.

A failing node aborts its branch and the run. Nodes already dispatched on
other branches are not cancelled, and nothing is compensated.

Example:
    ```python
    schema = {
        "nodes": [
            {"id": "fetch", "type": "webhook", "data": {"url": "https://api.example.com"}},
            {"id": "store", "type": "postgres", "data": {...}},
        ],
        "edges": [{"from": "fetch", "to": "store"}],
        "execution": {"mode": "sequential", "retryPolicy": {"maxAttempts": 3}},
    }
    await client.execute_workflow(SchemaWorkflow, schema, id="schema-1")
    ```
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from pyflownodes.activities.nodes import NodeExecutorRegistry
from pyflownodes.activities.order import OrderActivities
from pyflownodes.decorators import run, workflow_type
from pyflownodes.errors import ValidationError
from pyflownodes.executor.activity import execute_activity
from pyflownodes.executor.dag import next_nodes, starting_nodes
from pyflownodes.models.retry import ActivityPolicy
from pyflownodes.models.schema import WorkflowNode, WorkflowSchema
from pyflownodes.models.status import ExecutionMode

logger = logging.getLogger(__name__)


@workflow_type
class SchemaWorkflow:
    """
    Interprets a workflow schema.

    Args:
        registry: Node type -> executor activity (defaults to sendgrid,
            postgres and webhook)
    """

    def __init__(self, registry: NodeExecutorRegistry | None = None):
        self.registry = registry or NodeExecutorRegistry.default()

    @run
    async def run(self, schema: WorkflowSchema | Mapping[str, Any]) -> None:
        """
        Execute every node reachable from the starting nodes.

        Raises:
            ValidationError: If the schema is malformed or has no starting node
            ActivityFailure: If a node's executor failed after its retries
        """
        schema = WorkflowSchema.from_dict(schema)
        policy = ActivityPolicy.for_schema(schema.execution.retry_policy)
        mode = schema.execution.mode

        roots = starting_nodes(schema)
        if not roots:
            raise ValidationError("No starting nodes found in workflow")

        try:
            await self._run_all(schema, roots, mode, policy)
        except Exception as e:
            await self._log_failure(f"Workflow failed: {e}", policy)
            raise

        await self._log("Workflow completed successfully", policy)

    async def _run_all(
        self,
        schema: WorkflowSchema,
        nodes: list[WorkflowNode],
        mode: ExecutionMode,
        policy: ActivityPolicy,
    ) -> None:
        if mode == ExecutionMode.PARALLEL:
            await asyncio.gather(
                *(self._process_node(schema, node, mode, policy) for node in nodes)
            )
        else:
            for node in nodes:
                await self._process_node(schema, node, mode, policy)

    async def _process_node(
        self,
        schema: WorkflowSchema,
        node: WorkflowNode,
        mode: ExecutionMode,
        policy: ActivityPolicy,
    ) -> None:
        try:
            await self._log(f"Starting execution of node: {node.id} ({node.type})", policy)
            executor = self.registry.get(node.type)
            result = await execute_activity(executor, node.data, policy=policy)
            await self._log(
                f"Node {node.id} executed successfully: {json.dumps(result, default=str)}",
                policy,
            )
        except Exception as e:
            await self._log_failure(f"Error executing node {node.id}: {e}", policy)
            raise

        await self._run_all(schema, next_nodes(schema, node.id), mode, policy)

    async def _log(self, message: str, policy: ActivityPolicy) -> None:
        await execute_activity(OrderActivities.log_event, message, policy=policy)

    async def _log_failure(self, message: str, policy: ActivityPolicy) -> None:
        """Log a failure without letting a logging error replace it."""
        try:
            await self._log(message, policy)
        except Exception as e:
            logger.error(f"{message} (log_event failed: {e})")
