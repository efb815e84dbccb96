"""
Order saga workflow.

Design Pattern: Saga
Payment, then per-item inventory updates in parallel, then a detached
notification child. A failed inventory phase is compensated by cancelling
the payment. The saga can be cancelled at any suspension point by the
``cancel_order`` signal or by a client cancellation request; in both cases
it returns "Order <id> was cancelled" instead of failing.

Example:
    ```python
    handle = await client.start_workflow(
        OrderWorkflow,
        "order-1",
        "user-1",
        [{"product_id": "p-1", "quantity": 2}],
        Decimal("49.90"),
        id="order-1",
    )
    await handle.signal("add_order_item", {"product_id": "p-2", "quantity": 1})
    print(await handle.query("get_order_progress"))
    print(await handle.result())
    ```
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from pyflownodes.activities.order import OrderActivities
from pyflownodes.core.context import workflow_now
from pyflownodes.decorators import query, run, signal, workflow_type
from pyflownodes.errors import (
    ActivityFailure,
    ApplicationError,
    CancellationRequested,
    ValidationError,
    WorkflowAlreadyStartedError,
)
from pyflownodes.executor.activity import execute_activity
from pyflownodes.executor.child import start_child_workflow
from pyflownodes.executor.instance import upsert_search_attributes
from pyflownodes.executor.scope import CancellationScope, check_cancellation
from pyflownodes.models.order import OrderItem, OrderState
from pyflownodes.models.retry import OrderPolicies
from pyflownodes.models.status import OrderStatus, ParentClosePolicy

logger = logging.getLogger(__name__)


@workflow_type
class NotificationWorkflow:
    """Child workflow delivering one user notification."""

    def __init__(self, policies: OrderPolicies | None = None):
        self.policies = policies or OrderPolicies()

    @run
    async def run(self, user_id: str, message: str) -> None:
        await execute_activity(
            OrderActivities.send_notification,
            user_id,
            message,
            policy=self.policies.notification,
        )


@workflow_type
class OrderWorkflow:
    """
    Order processing saga.

    Args:
        policies: Activity policies for payment, inventory and notification
    """

    def __init__(self, policies: OrderPolicies | None = None):
        self.policies = policies or OrderPolicies()
        # Handlers may run before the run method opens the order
        self._state = OrderState()
        self._scope: CancellationScope | None = None

    @run
    async def run(
        self,
        order_id: str,
        user_id: str,
        items: Sequence[Mapping[str, Any] | OrderItem],
        total_amount: Decimal | float | str,
    ) -> str:
        """
        Process an order.

        Returns:
            "Order <id> processed successfully", or "Order <id> was cancelled"

        Raises:
            ApplicationError: PAYMENT_FAILED or INVENTORY_FAILED
        """
        self._state.open(items, total_amount, workflow_now())

        try:
            with CancellationScope.cancellable() as scope:
                self._scope = scope
                if self._state.cancelled:
                    scope.cancel("Order cancelled")
                await upsert_search_attributes(
                    {
                        "CustomStringField": [order_id],
                        "CustomKeywordField": ["order_processing"],
                    }
                )
                return await self._process(order_id, user_id)
        except Exception as e:
            if isinstance(e, CancellationRequested):
                self._state.cancel(workflow_now())
            if self._state.cancelled:
                logger.info(f"Order {order_id} was cancelled")
                return f"Order {order_id} was cancelled"
            raise

    async def _process(self, order_id: str, user_id: str) -> str:
        state = self._state

        state.transition(OrderStatus.PROCESSING_PAYMENT, workflow_now())
        try:
            await execute_activity(
                OrderActivities.process_payment,
                order_id,
                state.total_amount,
                policy=self.policies.payment,
            )
        except ActivityFailure as e:
            state.transition(OrderStatus.PAYMENT_FAILED, workflow_now())
            raise ApplicationError(f"Payment failed: {e}", type="PAYMENT_FAILED") from e
        state.record_progress(workflow_now(), payment=100, overall=50)

        state.transition(OrderStatus.UPDATING_INVENTORY, workflow_now())
        # Items added by signal up to this point are part of the order
        results = await asyncio.gather(
            *(
                execute_activity(
                    OrderActivities.update_inventory,
                    item.product_id,
                    item.quantity,
                    policy=self.policies.inventory,
                )
                for item in list(state.items)
            ),
            return_exceptions=True,
        )
        # Cancellation takes priority over item failures
        check_cancellation()
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if not isinstance(error, ActivityFailure):
                raise error
        if errors:
            await self._compensate_payment(order_id)
            state.transition(OrderStatus.INVENTORY_FAILED, workflow_now())
            raise ApplicationError(
                f"Inventory update failed: {errors[0]}", type="INVENTORY_FAILED"
            ) from errors[0]
        state.record_progress(workflow_now(), inventory=100, overall=100)

        try:
            await start_child_workflow(
                NotificationWorkflow,
                user_id,
                f"Order {order_id} has been processed successfully",
                id=f"notification-{order_id}",
                parent_close_policy=ParentClosePolicy.ABANDON,
            )
        except (WorkflowAlreadyStartedError, ValidationError) as e:
            logger.error(f"Order {order_id}: failed to start notification: {e}")

        state.transition(OrderStatus.COMPLETED, workflow_now())
        return f"Order {order_id} processed successfully"

    async def _compensate_payment(self, order_id: str) -> None:
        with CancellationScope.non_cancellable():
            try:
                await execute_activity(
                    OrderActivities.cancel_payment, order_id, policy=self.policies.payment
                )
            except ActivityFailure as e:
                logger.error(f"Order {order_id}: payment compensation failed: {e}")

    # =========================================================================
    # Signals and queries
    # =========================================================================

    @signal
    def add_order_item(self, item: Mapping[str, Any] | OrderItem) -> None:
        """Append an item; ignored once the order is cancelled or finished."""
        self._state.add_item(OrderItem.from_dict(item), workflow_now())

    @signal
    def cancel_order(self) -> None:
        if self._state.cancel(workflow_now()) and self._scope is not None:
            self._scope.cancel("Order cancelled")

    @query
    def get_order_status(self) -> dict[str, Any]:
        return self._state.snapshot()

    @query
    def get_order_progress(self) -> dict[str, int]:
        return self._state.progress.to_dict()
