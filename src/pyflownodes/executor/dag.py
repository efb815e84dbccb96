"""
Graph helpers for workflow schemas.

Starting nodes are nodes with no incoming edge. Children of a node follow
edge-declaration order; a node listed twice among one node's outgoing edges
is returned once. No visited-set is kept across paths: the schema processor
runs a node once per path that reaches it.
"""

from __future__ import annotations

from dataclasses import dataclass

from pyflownodes.models.schema import WorkflowNode, WorkflowSchema


def starting_nodes(schema: WorkflowSchema) -> list[WorkflowNode]:
    """Nodes with no incoming edge, in node-declaration order."""
    targets = {edge.to_node for edge in schema.edges}
    return [node for node in schema.nodes if node.id not in targets]


def next_nodes(schema: WorkflowSchema, node_id: str) -> list[WorkflowNode]:
    """Direct successors of ``node_id``, in edge-declaration order."""
    by_id = {node.id: node for node in schema.nodes}
    result: list[WorkflowNode] = []
    seen: set[str] = set()
    for edge in schema.edges:
        if edge.from_node != node_id or edge.to_node in seen:
            continue
        node = by_id.get(edge.to_node)
        if node is not None:
            seen.add(edge.to_node)
            result.append(node)
    return result


def has_cycle(schema: WorkflowSchema) -> bool:
    """Detect a cycle with an iterative three-colour DFS."""
    adjacency: dict[str, list[str]] = {node.id: [] for node in schema.nodes}
    for edge in schema.edges:
        adjacency.setdefault(edge.from_node, []).append(edge.to_node)
        adjacency.setdefault(edge.to_node, [])

    white, grey, black = 0, 1, 2
    colour = dict.fromkeys(adjacency, white)
    for root in adjacency:
        if colour[root] != white:
            continue
        stack = [(root, iter(adjacency[root]))]
        colour[root] = grey
        while stack:
            current, children = stack[-1]
            child = next(children, None)
            if child is None:
                colour[current] = black
                stack.pop()
            elif colour[child] == grey:
                return True
            elif colour[child] == white:
                colour[child] = grey
                stack.append((child, iter(adjacency[child])))
    return False


@dataclass(frozen=True)
class DagSummary:
    """
    Summary information about a schema graph.

    Attributes:
        total_nodes: Number of nodes
        roots: Starting node ids
        leaves: Ids of nodes without outgoing edges
        max_depth: Longest root-to-leaf path in nodes, None for cyclic graphs
        has_cycle: Whether the graph contains a cycle
    """

    total_nodes: int
    roots: list[str]
    leaves: list[str]
    max_depth: int | None
    has_cycle: bool

    @property
    def root_count(self) -> int:
        return len(self.roots)

    @property
    def leaf_count(self) -> int:
        return len(self.leaves)


def summarize(schema: WorkflowSchema) -> DagSummary:
    sources = {edge.from_node for edge in schema.edges}
    roots = [node.id for node in starting_nodes(schema)]
    leaves = [node.id for node in schema.nodes if node.id not in sources]
    cyclic = has_cycle(schema)

    max_depth: int | None = None
    if not cyclic:
        depth: dict[str, int] = {}

        def longest(node_id: str) -> int:
            if node_id not in depth:
                children = next_nodes(schema, node_id)
                depth[node_id] = 1 + max((longest(c.id) for c in children), default=0)
            return depth[node_id]

        max_depth = max((longest(r) for r in roots), default=0)

    return DagSummary(
        total_nodes=len(schema.nodes),
        roots=roots,
        leaves=leaves,
        max_depth=max_depth,
        has_cycle=cyclic,
    )
