"""Tests for the visibility query language."""

import pytest
from conftest import FIXED_NOW

from pyflownodes.errors import ValidationError
from pyflownodes.models import WorkflowExecution, WorkflowStatus
from pyflownodes.storage.query import Comparison, VisibilityQuery

EXECUTION = WorkflowExecution(
    workflow_id="order-42",
    run_id="run-1",
    workflow_type="OrderWorkflow",
    task_queue="orders",
    start_time=FIXED_NOW,
    status=WorkflowStatus.FAILED,
    search_attributes={"CustomKeywordField": ["order_processing", "priority"]},
)


def test_parse_conjunction():
    query = VisibilityQuery.parse(
        "WorkflowType = 'OrderWorkflow' and ExecutionStatus != \"COMPLETED\""
    )
    assert query.clauses == (
        Comparison("WorkflowType", "=", "OrderWorkflow"),
        Comparison("ExecutionStatus", "!=", "COMPLETED"),
    )


def test_escaped_quotes():
    query = VisibilityQuery.parse(r"CustomStringField = 'it\'s'")
    assert query.clauses[0].value == "it's"


@pytest.mark.parametrize("text", [None, "", "   "])
def test_empty_query_matches_everything(text):
    query = VisibilityQuery.parse(text)
    assert query.clauses == ()
    assert query.matches(EXECUTION)


def test_parse_is_idempotent():
    query = VisibilityQuery.parse("WorkflowId = 'order-42'")
    assert VisibilityQuery.parse(query) is query


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("WorkflowId = 'order-42'", True),
        ("RunId = 'run-2'", False),
        ("TaskQueue = 'orders'", True),
        ("ExecutionStatus = 'FAILED'", True),
        ("ExecutionStatus != 'FAILED'", False),
        ("CustomKeywordField = 'priority'", True),
        ("CustomKeywordField != 'priority'", False),
        ("CustomStringField = 'order-42'", False),
        ("CustomStringField != 'order-42'", True),
        ("WorkflowType = 'OrderWorkflow' AND CustomKeywordField = 'order_processing'", True),
        ("WorkflowType = 'OrderWorkflow' AND WorkflowId = 'order-7'", False),
    ],
)
def test_matches(text, expected):
    assert VisibilityQuery.parse(text).matches(EXECUTION) is expected


@pytest.mark.parametrize(
    "text",
    [
        "WorkflowType",
        "WorkflowType =",
        "WorkflowType = OrderWorkflow",
        "= 'x'",
        "WorkflowType = 'a' OR WorkflowId = 'b'",
        "WorkflowType = 'a' AND",
        "WorkflowType > 'a'",
        "WorkflowType = 'unterminated",
    ],
)
def test_malformed_queries(text):
    with pytest.raises(ValidationError):
        VisibilityQuery.parse(text)


def test_builtin_equalities_only_include_equal_builtin_clauses():
    query = VisibilityQuery.parse(
        "WorkflowType = 'OrderWorkflow' AND ExecutionStatus != 'RUNNING' "
        "AND CustomStringField = 'x' AND TaskQueue = 'orders'"
    )
    assert query.builtin_equalities() == {"workflow_type": "OrderWorkflow", "task_queue": "orders"}
