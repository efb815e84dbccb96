"""
Schema node executors.

Each executor is an activity taking a node's ``data`` and returning the
``NodeResult`` wire form ``{"success": True, "data": ...}``. Failures raise
a typed NodeExecutionError (retryable under the schema's policy);
malformed node configuration raises NodeConfigurationError, which is never
retried.

NodeExecutorRegistry maps node types to executor activities. SchemaWorkflow
dispatches through it, so new node types plug in with ``register()``:

    ```python
    registry = NodeExecutorRegistry.default().register("slack", "execute_slack_node")
    worker.register_workflow(SchemaWorkflow, lambda: SchemaWorkflow(registry))
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from pyflownodes.config import WorkerSettings
from pyflownodes.decorators import activity, get_activity_name
from pyflownodes.errors import (
    EmailError,
    NodeConfigurationError,
    UnsupportedNodeType,
    WebhookError,
)
from pyflownodes.models.result import NodeResult
from pyflownodes.nodes.cache import ResponseCache
from pyflownodes.nodes.http_request import HttpRequestNode, HttpRequestParameters
from pyflownodes.nodes.postgres import PostgresClient, PostgresConnectionDetails
from pyflownodes.nodes.sendgrid import SendGridClient, SendGridParameters

logger = logging.getLogger(__name__)


def _node_config(data: Mapping[str, Any]) -> Mapping[str, Any]:
    """SendGrid config lives at ``data.config`` or, nested once more, ``data.data.config``."""
    nested = data.get("data")
    if isinstance(nested, Mapping) and isinstance(nested.get("config"), Mapping):
        return nested["config"]
    config = data.get("config")
    if isinstance(config, Mapping):
        return config
    raise NodeConfigurationError("Invalid node data structure: missing data.config")


class NodeExecutors:
    """
    Activities for the built-in node types.

    Args:
        http_client: Shared httpx.AsyncClient for webhook and SendGrid calls
            (caller owns it); short-lived clients are used when omitted
        cache: Response cache for webhook GET requests
        sendgrid_api_key: Fallback API key when a node config carries none
        postgres_connect: Connection factory for Postgres nodes
            (defaults to ``asyncpg.connect``)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        cache: ResponseCache | None = None,
        sendgrid_api_key: str | None = None,
        postgres_connect: Callable[..., Awaitable[Any]] | None = None,
    ):
        self._http = HttpRequestNode(http_client, cache)
        self._sendgrid = SendGridClient(http_client)
        self._sendgrid_api_key = sendgrid_api_key
        self._postgres_connect = postgres_connect

    @classmethod
    def from_settings(
        cls, settings: WorkerSettings, http_client: httpx.AsyncClient | None = None
    ) -> NodeExecutors:
        return cls(http_client=http_client, sendgrid_api_key=settings.sendgrid_api_key)

    @activity
    async def execute_sendgrid_node(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """
        Send the email described by ``config.email`` / ``config.connection``.

        Raises:
            NodeConfigurationError: Missing or invalid email configuration
            EmailError: SendGrid rejected the email or was unreachable
        """
        if not isinstance(data, Mapping):
            raise NodeConfigurationError("Invalid node data structure: missing data.config")
        params = SendGridParameters.from_node_config(
            _node_config(data), default_api_key=self._sendgrid_api_key
        )
        response = await self._sendgrid.send(params)
        if not response.success:
            raise EmailError(response.error or response.message)
        return NodeResult.ok(response.to_dict()).to_dict()

    @activity
    async def execute_postgres_node(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """
        Run ``data.query`` with ``data.params``.

        The connection comes from ``data.connectionString`` or, failing that,
        ``data.connectionDetails``.

        Raises:
            NodeConfigurationError: Missing query or connection
            DatabaseError: Connection or statement failure
        """
        if not isinstance(data, Mapping):
            raise NodeConfigurationError("Postgres node data must be an object")

        details = data.get("connectionDetails")
        client = PostgresClient(
            dsn=data.get("connectionString"),
            details=PostgresConnectionDetails.from_dict(details) if details else None,
            connect=self._postgres_connect,
        )
        rows = await client.execute_query(data.get("query"), data.get("params") or ())
        return NodeResult.ok(rows).to_dict()

    @activity
    async def execute_webhook_node(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """
        Perform the HTTP request described by ``data``.

        Raises:
            NodeConfigurationError: Invalid URL, method or options
            WebhookError: Network failure or a non-2xx final response
        """
        params = HttpRequestParameters.from_dict(data)
        response = await self._http.execute(params)
        if not response.is_success:
            raise WebhookError(
                f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
            )
        return NodeResult.ok(response.data).to_dict()


DEFAULT_NODE_ACTIVITIES: dict[str, str] = {
    "sendgrid": "execute_sendgrid_node",
    "postgres": "execute_postgres_node",
    "webhook": "execute_webhook_node",
}


class NodeExecutorRegistry:
    """
    Node type -> executor activity (a registered activity name or reference).

    Design Pattern: Registry
    """

    def __init__(self, executors: Mapping[str, Any] | None = None):
        self._executors: dict[str, Any] = dict(executors or {})

    @classmethod
    def default(cls) -> NodeExecutorRegistry:
        """Registry with the sendgrid, postgres and webhook executors."""
        return cls(DEFAULT_NODE_ACTIVITIES)

    def register(self, node_type: str, executor: Any) -> NodeExecutorRegistry:
        """
        Map ``node_type`` to an activity.

        Returns:
            self for method chaining
        """
        self._executors[node_type] = executor
        logger.debug(f"Registered node executor: {node_type} -> {get_activity_name(executor)}")
        return self

    def get(self, node_type: str) -> Any:
        """
        Raises:
            UnsupportedNodeType: If no executor handles ``node_type``
        """
        try:
            return self._executors[node_type]
        except KeyError:
            raise UnsupportedNodeType(node_type) from None

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._executors

    @property
    def node_types(self) -> list[str]:
        return sorted(self._executors)
