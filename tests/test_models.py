"""
Tests for data models: order state, policies, schemas and visibility records.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import FIXED_NOW

from pyflownodes.errors import ValidationError
from pyflownodes.models import (
    ActivityPolicy,
    ExecutionMode,
    NodeResult,
    OrderItem,
    OrderState,
    OrderStatus,
    RetryPolicy,
    SchemaRetryPolicy,
    WorkflowExecution,
    WorkflowSchema,
    WorkflowStatus,
    parse_duration,
)
from pyflownodes.models.order import to_decimal


# =============================================================================
# Order state
# =============================================================================


def new_state(items=({"product_id": "p-1", "quantity": 1},), amount="10.50") -> OrderState:
    return OrderState.create(items, amount, FIXED_NOW)


def test_order_item_accepts_both_key_styles():
    assert OrderItem.from_dict({"productId": "p-1", "quantity": 2}) == OrderItem("p-1", 2)
    assert OrderItem.from_dict({"product_id": "p-1", "quantity": 2}).to_dict() == {
        "product_id": "p-1",
        "quantity": 2,
    }


@pytest.mark.parametrize(
    "raw",
    [
        {"product_id": "", "quantity": 1},
        {"product_id": "p-1", "quantity": 0},
        {"product_id": "p-1", "quantity": -3},
        {"product_id": "p-1", "quantity": "2"},
        {"product_id": "p-1", "quantity": True},
    ],
)
def test_order_item_validate_rejects_invalid_lines(raw):
    with pytest.raises(ValidationError):
        OrderItem.from_dict(raw).validate()


def test_order_state_starts_processing():
    state = new_state()
    assert state.status == OrderStatus.PROCESSING
    assert state.total_amount == Decimal("10.50")
    assert state.progress.to_dict() == {"payment": 0, "inventory": 0, "overall": 0}
    assert not state.cancelled


def test_order_state_keeps_caller_values():
    state = new_state(items=[{"product_id": "p-1", "quantity": 0}], amount="ten")
    assert state.total_amount == "ten"
    assert state.items == [OrderItem("p-1", 0)]
    valid = OrderItem.from_dict({"product_id": "p-1", "quantity": 3})
    assert valid.validate() is valid


@pytest.mark.parametrize("amount", ["ten", "NaN", "Infinity", None])
def test_to_decimal_rejects_non_numbers(amount):
    with pytest.raises(ValidationError, match="Invalid order amount"):
        to_decimal(amount)


def test_open_keeps_items_signalled_earlier():
    state = OrderState()
    state.add_item(OrderItem("p-9", 1), FIXED_NOW)
    state.open([{"productId": "p-1", "quantity": 2}], 12.5, FIXED_NOW)
    assert [item.product_id for item in state.items] == ["p-1", "p-9"]
    assert state.total_amount == Decimal("12.5")
    assert state.last_updated == FIXED_NOW


def test_terminal_status_is_final():
    state = new_state()
    assert state.transition(OrderStatus.COMPLETED, FIXED_NOW)
    assert not state.transition(OrderStatus.PROCESSING_PAYMENT, FIXED_NOW)
    assert not state.cancel(FIXED_NOW)
    assert state.status == OrderStatus.COMPLETED


def test_cancel_is_one_way():
    state = new_state()
    assert state.cancel(FIXED_NOW)
    assert not state.cancel(FIXED_NOW)
    assert not state.transition(OrderStatus.UPDATING_INVENTORY, FIXED_NOW)
    assert state.status == OrderStatus.CANCELLED
    assert state.cancelled


def test_items_cannot_be_added_after_cancel():
    state = new_state()
    assert state.add_item(OrderItem("p-2", 1), FIXED_NOW)
    state.cancel(FIXED_NOW)
    assert not state.add_item(OrderItem("p-3", 1), FIXED_NOW)
    assert [item.product_id for item in state.items] == ["p-1", "p-2"]


def test_progress_never_decreases_and_is_clamped():
    state = new_state()
    state.record_progress(FIXED_NOW, payment=60)
    state.record_progress(FIXED_NOW, payment=40, overall=150)
    assert state.progress.payment == 60
    assert state.progress.overall == 100


def test_snapshot_is_json_ready():
    snapshot = new_state().snapshot()
    assert snapshot == {
        "status": "PROCESSING",
        "items": [{"product_id": "p-1", "quantity": 1}],
        "total_amount": "10.50",
        "progress": {"payment": 0, "inventory": 0, "overall": 0},
        "last_updated": FIXED_NOW.isoformat(),
        "cancelled": False,
    }


def test_terminal_statuses():
    assert {s for s in OrderStatus if s.is_terminal} == {
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.INVENTORY_FAILED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    }
    assert not WorkflowStatus.RUNNING.is_terminal
    assert WorkflowStatus.TERMINATED.is_terminal


# =============================================================================
# Retry and activity policies
# =============================================================================


def test_delay_for_attempt_backs_off_and_caps():
    policy = RetryPolicy(
        initial_interval=timedelta(seconds=1),
        maximum_interval=timedelta(seconds=5),
        backoff_coefficient=2.0,
        maximum_attempts=6,
    )
    delays = [policy.delay_for_attempt(n) for n in range(1, 7)]
    assert delays == [
        timedelta(seconds=1),
        timedelta(seconds=2),
        timedelta(seconds=4),
        timedelta(seconds=5),
        timedelta(seconds=5),
        None,
    ]


def test_single_attempt_never_retries():
    assert RetryPolicy.with_maximum_attempts(1).delay_for_attempt(1) is None


@pytest.mark.parametrize(
    "kwargs",
    [{"maximum_attempts": 0}, {"backoff_coefficient": 0.5}],
)
def test_invalid_retry_policy(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_non_retryable_types_are_stored_as_tuple():
    policy = RetryPolicy(non_retryable_error_types=["PAYMENT_ERROR"])
    assert policy.non_retryable_error_types == ("PAYMENT_ERROR",)
    assert policy.is_non_retryable_type("PAYMENT_ERROR")
    assert not policy.is_non_retryable_type("INVENTORY_ERROR")


def test_predefined_policies():
    assert ActivityPolicy.PAYMENT.start_to_close_timeout == timedelta(minutes=2)
    assert ActivityPolicy.PAYMENT.heartbeat_timeout == timedelta(seconds=10)
    assert ActivityPolicy.PAYMENT.retry.maximum_attempts == 5
    assert ActivityPolicy.INVENTORY.start_to_close_timeout == timedelta(seconds=30)
    assert ActivityPolicy.INVENTORY.retry.non_retryable_error_types == ("INVENTORY_ERROR",)
    assert ActivityPolicy.BASE.heartbeat_timeout is None


def test_schema_policy():
    policy = ActivityPolicy.for_schema(
        SchemaRetryPolicy(max_attempts=4, initial_interval=timedelta(milliseconds=250))
    )
    assert policy.start_to_close_timeout == timedelta(minutes=5)
    assert policy.retry.maximum_attempts == 4
    assert policy.retry.initial_interval == timedelta(milliseconds=250)
    assert policy.retry.maximum_interval == timedelta(minutes=1)
    assert policy.retry.non_retryable_error_types == ()


# =============================================================================
# Schemas
# =============================================================================


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (500, timedelta(milliseconds=500)),
        ("500ms", timedelta(milliseconds=500)),
        ("1s", timedelta(seconds=1)),
        ("1 minute", timedelta(minutes=1)),
        ("2 minutes", timedelta(minutes=2)),
        ("1.5h", timedelta(minutes=90)),
        ("250", timedelta(milliseconds=250)),
        (timedelta(seconds=3), timedelta(seconds=3)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["soon", "5 fortnights", -1, True, None, [1]])
def test_parse_duration_rejects(value):
    with pytest.raises(ValidationError):
        parse_duration(value)

SCHEMA = {
    "workflowId": "wf-1",
    "name": "Notify",
    "version": "2",
    "nodes": [
        {"id": "a", "type": "webhook", "data": {"url": "https://example.com"}},
        {"id": "b", "type": "sendgrid", "data": {"config": {}}},
    ],
    "edges": [{"id": "e1", "from": "a", "to": "b"}],
    "execution": {"mode": "parallel", "retryPolicy": {"maxAttempts": 2, "initialInterval": "2s"}},
}


def test_schema_from_dict():
    schema = WorkflowSchema.from_dict(SCHEMA)
    assert [n.id for n in schema.nodes] == ["a", "b"]
    assert schema.edges[0].from_node == "a"
    assert schema.edges[0].type == "default"
    assert schema.execution.mode == ExecutionMode.PARALLEL
    assert schema.execution.retry_policy == SchemaRetryPolicy(2, timedelta(seconds=2))
    assert schema.node("b").data == {"config": {}}
    assert schema.node("z") is None
    assert WorkflowSchema.from_dict(schema) is schema


def test_schema_to_dict_uses_wire_names():
    data = WorkflowSchema.from_dict(SCHEMA).to_dict()
    assert data["workflowId"] == "wf-1"
    assert data["edges"] == [{"id": "e1", "from": "a", "to": "b", "type": "default"}]
    assert data["execution"] == {
        "mode": "parallel",
        "retryPolicy": {"maxAttempts": 2, "initialInterval": 2000},
    }


def test_execution_defaults():
    schema = WorkflowSchema.from_dict({"nodes": [{"id": "a", "type": "webhook"}]})
    assert schema.execution.mode == ExecutionMode.SEQUENTIAL
    assert schema.execution.retry_policy == SchemaRetryPolicy(3, timedelta(seconds=1))


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ({"edges": []}, "requires a list of nodes"),
        ({"nodes": [{"type": "webhook"}]}, "requires a string id"),
        ({"nodes": [{"id": "a"}]}, "requires a string type"),
        ({"nodes": [], "edges": [{"from": "a"}]}, "requires 'from' and 'to'"),
        ({"nodes": [], "execution": {"mode": "eventually"}}, "Invalid execution mode"),
        ({"nodes": [], "execution": {"retryPolicy": {"maxAttempts": "3"}}}, "maxAttempts"),
        ("not a schema", "Schema must be an object"),
    ],
)
def test_malformed_schema(raw, message):
    with pytest.raises(ValidationError, match=message):
        WorkflowSchema.from_dict(raw)


@pytest.mark.parametrize(
    ("nodes", "edges", "message"),
    [
        (["a", "a"], [], "Duplicate node id: a"),
        (["a"], [("a", "ghost")], "unknown node: ghost"),
        (["a", "b"], [("a", "b"), ("b", "a")], "No starting nodes found in workflow"),
    ],
)
def test_schema_validate(nodes, edges, message):
    schema = WorkflowSchema.from_dict(
        {
            "nodes": [{"id": n, "type": "webhook"} for n in nodes],
            "edges": [{"from": a, "to": b} for a, b in edges],
        }
    )
    with pytest.raises(ValidationError, match=message):
        schema.validate()


# =============================================================================
# Results and visibility records
# =============================================================================


def test_node_result_wire_form():
    assert NodeResult.ok({"rows": 1}).to_dict() == {"success": True, "data": {"rows": 1}}
    assert NodeResult.ok().to_dict() == {"success": True}
    assert NodeResult.failed("boom", node_id="a").to_dict() == {
        "success": False,
        "error": "boom",
        "node_id": "a",
    }


def test_execution_json():
    execution = WorkflowExecution(
        workflow_id="order-1",
        run_id="run-1",
        workflow_type="OrderWorkflow",
        task_queue="q",
        start_time=FIXED_NOW,
        search_attributes={"CustomStringField": ["order-1"]},
        memo={"k": "v"},
    )
    restored = WorkflowExecution.from_json(execution.to_json())
    assert restored == execution
    assert restored.is_running()


def test_execution_copy_is_detached():
    execution = WorkflowExecution("w", "r", "T", "q", FIXED_NOW, search_attributes={"k": ["a"]})
    copy = execution.copy()
    copy.search_attributes["k"].append("b")
    assert execution.search_attributes == {"k": ["a"]}
