"""
Workflow schema: a declarative graph of typed nodes.

A schema is parsed once from its camelCase wire form and is immutable
afterwards. Starting nodes are the nodes with no incoming edge; the graph is
not required to be acyclic.

Example:
    ```python
    schema = WorkflowSchema.from_dict({
        "workflowId": "wf-1",
        "name": "Notify",
        "nodes": [
            {"id": "a", "type": "webhook", "data": {"url": "https://example.com"}},
            {"id": "b", "type": "sendgrid", "data": {...}},
        ],
        "edges": [{"from": "a", "to": "b"}],
        "execution": {
            "mode": "sequential",
            "retryPolicy": {"maxAttempts": 3, "initialInterval": "1s"},
        },
    })
    schema.validate()
    ```
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from pyflownodes.errors import ValidationError
from pyflownodes.models.status import ExecutionMode

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")

_UNIT_SECONDS = {
    "ms": 0.001,
    "millisecond": 0.001,
    "milliseconds": 0.001,
    "": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "days": 86400.0,
}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration value.

    Accepts timedeltas, numbers (milliseconds) and strings such as
    ``"500ms"``, ``"1s"``, ``"1 minute"`` or ``"2 minutes"``. A bare numeric
    string is read as milliseconds.

    Raises:
        ValidationError: If the value cannot be interpreted
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Invalid duration: {value!r}")
    if isinstance(value, int | float):
        if value < 0:
            raise ValidationError(f"Duration must not be negative: {value!r}")
        return timedelta(milliseconds=value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            factor = _UNIT_SECONDS.get(unit.lower())
            if factor is not None:
                return timedelta(seconds=float(amount) * factor)
    raise ValidationError(f"Invalid duration: {value!r}")


@dataclass(frozen=True)
class WorkflowNode:
    """A typed work item; ``data`` is opaque configuration for its executor."""

    id: str
    type: str
    data: Any = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WorkflowNode:
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Node must be an object, got {type(raw).__name__}")
        node_id = raw.get("id")
        node_type = raw.get("type")
        if not node_id or not isinstance(node_id, str):
            raise ValidationError("Node requires a string id")
        if not node_type or not isinstance(node_type, str):
            raise ValidationError(f"Node {node_id} requires a string type")
        return cls(id=node_id, type=node_type, data=raw.get("data"))


@dataclass(frozen=True)
class WorkflowEdge:
    """Directed edge ``from_node -> to_node``."""

    from_node: str
    to_node: str
    id: str | None = None
    type: str = "default"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> WorkflowEdge:
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Edge must be an object, got {type(raw).__name__}")
        from_node = raw.get("from", raw.get("from_node"))
        to_node = raw.get("to", raw.get("to_node"))
        if not from_node or not to_node:
            raise ValidationError(f"Edge requires 'from' and 'to': {dict(raw)!r}")
        return cls(
            from_node=from_node,
            to_node=to_node,
            id=raw.get("id"),
            type=raw.get("type") or "default",
        )


@dataclass(frozen=True)
class SchemaRetryPolicy:
    """Retry settings declared by a schema; applied to every node of a run."""

    max_attempts: int = 3
    initial_interval: timedelta = timedelta(seconds=1)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValidationError(f"maxAttempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> SchemaRetryPolicy:
        raw = raw or {}
        # Missing or zero values fall back to the defaults
        max_attempts = raw.get("maxAttempts") or 3
        interval = raw.get("initialInterval") or timedelta(seconds=1)
        if not isinstance(max_attempts, int) or isinstance(max_attempts, bool):
            raise ValidationError(f"maxAttempts must be an integer, got {max_attempts!r}")
        return cls(max_attempts=max_attempts, initial_interval=parse_duration(interval))


@dataclass(frozen=True)
class ExecutionSettings:
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    retry_policy: SchemaRetryPolicy = field(default_factory=SchemaRetryPolicy)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ExecutionSettings:
        raw = raw or {}
        mode_value = raw.get("mode", ExecutionMode.SEQUENTIAL.value)
        try:
            mode = ExecutionMode(mode_value)
        except ValueError as e:
            raise ValidationError(f"Invalid execution mode: {mode_value!r}") from e
        return cls(mode=mode, retry_policy=SchemaRetryPolicy.from_dict(raw.get("retryPolicy")))


@dataclass(frozen=True)
class WorkflowSchema:
    """
    Declarative graph of typed nodes.

    Attributes:
        nodes: Nodes in declaration order
        edges: Edges in declaration order (child order follows this)
        execution: Global mode and retry settings
        workflow_id, name, description, version: Descriptive metadata
    """

    nodes: tuple[WorkflowNode, ...]
    edges: tuple[WorkflowEdge, ...] = ()
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    workflow_id: str | None = None
    name: str | None = None
    description: str | None = None
    version: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | WorkflowSchema) -> WorkflowSchema:
        """
        Parse the camelCase wire form.

        Raises:
            ValidationError: On missing or malformed fields
        """
        if isinstance(data, WorkflowSchema):
            return data
        if not isinstance(data, Mapping):
            raise ValidationError(f"Schema must be an object, got {type(data).__name__}")

        nodes = data.get("nodes")
        if not isinstance(nodes, list | tuple):
            raise ValidationError("Schema requires a list of nodes")
        edges = data.get("edges") or []
        if not isinstance(edges, list | tuple):
            raise ValidationError("Schema edges must be a list")

        return cls(
            nodes=tuple(WorkflowNode.from_dict(n) for n in nodes),
            edges=tuple(WorkflowEdge.from_dict(e) for e in edges),
            execution=ExecutionSettings.from_dict(data.get("execution")),
            workflow_id=data.get("workflowId"),
            name=data.get("name"),
            description=data.get("description"),
            version=data.get("version"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflowId": self.workflow_id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "nodes": [{"id": n.id, "type": n.type, "data": n.data} for n in self.nodes],
            "edges": [
                {"id": e.id, "from": e.from_node, "to": e.to_node, "type": e.type}
                for e in self.edges
            ],
            "execution": {
                "mode": self.execution.mode.value,
                "retryPolicy": {
                    "maxAttempts": self.execution.retry_policy.max_attempts,
                    "initialInterval": int(
                        self.execution.retry_policy.initial_interval.total_seconds() * 1000
                    ),
                },
            },
        }

    def node(self, node_id: str) -> WorkflowNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def validate(self) -> None:
        """
        Check structural consistency.

        Raises:
            ValidationError: On duplicate node ids, edges referencing unknown
                nodes, or when every node has an incoming edge
        """
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValidationError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

        for edge in self.edges:
            if edge.from_node not in seen:
                raise ValidationError(f"Edge references unknown node: {edge.from_node}")
            if edge.to_node not in seen:
                raise ValidationError(f"Edge references unknown node: {edge.to_node}")

        targets = {edge.to_node for edge in self.edges}
        if all(node.id in targets for node in self.nodes):
            raise ValidationError("No starting nodes found in workflow")
