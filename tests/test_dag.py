"""Tests for schema graph helpers."""

import pytest

from pyflownodes.executor.dag import has_cycle, next_nodes, starting_nodes, summarize
from pyflownodes.models import WorkflowSchema


def graph(nodes, edges) -> WorkflowSchema:
    return WorkflowSchema.from_dict(
        {
            "nodes": [{"id": n, "type": "webhook"} for n in nodes],
            "edges": [{"from": a, "to": b} for a, b in edges],
        }
    )


def ids(nodes) -> list[str]:
    return [node.id for node in nodes]


def test_starting_nodes_keep_declaration_order():
    schema = graph(["c", "a", "b"], [("a", "b")])
    assert ids(starting_nodes(schema)) == ["c", "a"]


def test_next_nodes_follow_edge_order():
    schema = graph(["a", "b", "c", "d"], [("a", "d"), ("a", "b"), ("c", "b"), ("a", "c")])
    assert ids(next_nodes(schema, "a")) == ["d", "b", "c"]
    assert next_nodes(schema, "d") == []


def test_next_nodes_dedupes_repeated_edges():
    schema = graph(["a", "b"], [("a", "b"), ("a", "b")])
    assert ids(next_nodes(schema, "a")) == ["b"]


def test_next_nodes_skips_unknown_targets():
    schema = graph(["a"], [("a", "ghost")])
    assert next_nodes(schema, "a") == []


@pytest.mark.parametrize(
    ("edges", "cyclic"),
    [
        ([("a", "b"), ("b", "c")], False),
        ([("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")], False),
        ([("a", "b"), ("b", "c"), ("c", "b")], True),
        ([("d", "d")], True),
    ],
)
def test_has_cycle(edges, cyclic):
    assert has_cycle(graph(["a", "b", "c", "d"], edges)) is cyclic


def test_summarize_diamond():
    summary = summarize(graph(["a", "b", "c", "d"], [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")]))
    assert summary.total_nodes == 4
    assert summary.roots == ["a"]
    assert summary.leaves == ["d"]
    assert summary.max_depth == 3
    assert not summary.has_cycle
    assert (summary.root_count, summary.leaf_count) == (1, 1)


def test_summarize_cycle_has_no_depth():
    summary = summarize(graph(["a", "b", "c"], [("a", "b"), ("b", "c"), ("c", "b")]))
    assert summary.has_cycle
    assert summary.max_depth is None
    assert summary.roots == ["a"]
