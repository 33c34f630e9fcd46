"""Order transition engine.

Every transition runs as one store transaction: the current order is read,
the action is validated against it (status, assignment, ownership) and the new
fields are written together with any side-effect record. A rejected action
writes nothing.
"""

import time
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel

from ecowheels.auth.session import DriverSession
from ecowheels.config import get_settings
from ecowheels.errors import (
    AssignmentConflictError,
    AuthorizationError,
    EcoWheelsError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
)
from ecowheels.models.decline import DeclineReason, DeclineRecord
from ecowheels.models.driver import Driver
from ecowheels.models.ledger import EarningsEntry, EarningsType
from ecowheels.models.order import Order, OrderStatus
from ecowheels.state.documents import (
    DRIVERS,
    EARNINGS,
    ORDER_DECLINES,
    ORDERS,
    DocumentAppend,
    DocumentStore,
    WritePlan,
)
from ecowheels.utils.logging import WorkflowLogger
from ecowheels.utils.tracing import WorkflowTracer
from ecowheels.workflow.states import OrderAction, OrderTransitions
from ecowheels.workflow.visibility import (
    OrderBuckets,
    active_orders_query,
    available_orders_query,
    classify_orders,
)

PlanBuilder = Callable[[Order, datetime], WritePlan]


class TransitionOutcome(BaseModel):
    """The order after a transition and the record it produced, if any."""

    action: OrderAction
    order: Order
    earnings: EarningsEntry | None = None
    decline: DeclineRecord | None = None


def _advance(action: OrderAction, order: Order, now: datetime) -> dict[str, Any]:
    """New status plus the action's timestamp, which is only written once."""
    updates: dict[str, Any] = {"status": OrderTransitions.target(action, order.status)}
    field = OrderTransitions.TIMESTAMP_FIELDS[action]
    if getattr(order, field) is None:
        updates[field] = now
    return updates


def _snapshot(order: Order) -> dict[str, Any]:
    return order.model_dump(
        mode="json",
        include={
            "order_code",
            "status",
            "driver_id",
            "vehicle_type",
            "price",
            "pickup_address",
            "delivery_address",
            "decline_count",
        },
    )


class OrderTransitionEngine:
    """Applies accept, decline, pickup, start-transit and complete to orders."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.settings = get_settings()
        self.logger = WorkflowLogger("order_engine")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # Reads

    async def get_order(self, order_id: str) -> Order:
        data = await self.store.get(ORDERS, order_id)
        if data is None:
            raise NotFoundError(f"Order {order_id} not found")
        return Order.model_validate(data)

    async def get_driver(self, session: DriverSession) -> Driver:
        data = await self.store.get(DRIVERS, session.uid)
        if data is None:
            raise NotFoundError("Driver profile not found")
        return Driver.model_validate(data)

    async def visible_orders(self, session: DriverSession) -> OrderBuckets:
        """Current available and active orders for the session's driver."""
        session.require_active()
        driver = await self.get_driver(session)

        documents = await self.store.query(available_orders_query(driver))
        documents += await self.store.query(active_orders_query(driver.uid))

        return classify_orders(
            driver,
            (Order.model_validate(doc) for doc in documents),
            limit=self.settings.available_orders_limit,
        )

    # Transitions

    async def accept(
        self,
        session: DriverSession,
        order_id: str,
        tracer: WorkflowTracer | None = None,
    ) -> TransitionOutcome:
        """Assign a pending, unassigned order to the calling driver."""

        def build(order: Order, now: datetime) -> WritePlan:
            return WritePlan(
                updates={**_advance(OrderAction.ACCEPT, order, now), "driver_id": session.uid}
            )

        return await self._apply(session, order_id, OrderAction.ACCEPT, build, tracer)

    async def decline(
        self,
        session: DriverSession,
        order_id: str,
        reason: DeclineReason | str | None,
        details: str | None = None,
        tracer: WorkflowTracer | None = None,
    ) -> TransitionOutcome:
        """Record a decline and hide the order from the calling driver.

        Allowed from any status. An accepted order held by the caller is
        released back to pending; in every other case the status and the
        assignment are kept and only the caller's decline is recorded.
        """
        session.require_active()
        reason = self._validate_reason(reason)
        details = self._validate_details(details)

        def build(order: Order, now: datetime) -> WritePlan:
            declined = list(order.declined_drivers)
            if session.uid not in declined:
                declined.append(session.uid)

            updates: dict[str, Any] = {
                "declined_drivers": declined,
                "decline_count": order.decline_count + 1,
                "last_declined_at": now,
            }
            if order.status == OrderStatus.ACCEPTED and order.driver_id == session.uid:
                updates.update(status=OrderStatus.PENDING, driver_id=None)

            record = DeclineRecord(
                order_id=order.id,
                driver_id=session.uid,
                reason=reason,
                details=details,
                timestamp=now,
                order_snapshot=_snapshot(order),
            )
            return WritePlan(
                updates=updates,
                appends=[
                    DocumentAppend(
                        ORDER_DECLINES, record.model_dump(mode="json"), id=record.id
                    )
                ],
            )

        return await self._apply(session, order_id, OrderAction.DECLINE, build, tracer)

    async def pickup(
        self,
        session: DriverSession,
        order_id: str,
        tracer: WorkflowTracer | None = None,
    ) -> TransitionOutcome:
        def build(order: Order, now: datetime) -> WritePlan:
            return WritePlan(updates=_advance(OrderAction.PICKUP, order, now))

        return await self._apply(session, order_id, OrderAction.PICKUP, build, tracer)

    async def start_transit(
        self,
        session: DriverSession,
        order_id: str,
        tracer: WorkflowTracer | None = None,
    ) -> TransitionOutcome:
        """Mark a picked-up order as on its way (navigation started)."""

        def build(order: Order, now: datetime) -> WritePlan:
            return WritePlan(updates=_advance(OrderAction.START_TRANSIT, order, now))

        return await self._apply(session, order_id, OrderAction.START_TRANSIT, build, tracer)

    async def complete(
        self,
        session: DriverSession,
        order_id: str,
        tracer: WorkflowTracer | None = None,
    ) -> TransitionOutcome:
        """Deliver the order and credit its price to the driver's earnings."""

        def build(order: Order, now: datetime) -> WritePlan:
            entry = EarningsEntry(
                id=order.id,
                driver_id=session.uid,
                order_id=order.id,
                order_code=order.order_code,
                amount=order.price,
                date=now,
                type=EarningsType.BASE,
            )
            return WritePlan(
                updates=_advance(OrderAction.COMPLETE, order, now),
                appends=[DocumentAppend(EARNINGS, entry.model_dump(mode="json"), id=entry.id)],
            )

        return await self._apply(session, order_id, OrderAction.COMPLETE, build, tracer)

    # Internals

    def _validate_reason(self, reason: DeclineReason | str | None) -> DeclineReason:
        if reason is None or reason == "":
            raise InvalidInputError("Please select a reason for declining")
        try:
            return DeclineReason(reason)
        except ValueError as e:
            raise InvalidInputError(f"Unknown decline reason: {reason}") from e

    def _validate_details(self, details: str | None) -> str | None:
        if details is None:
            return None
        details = details.strip()
        if len(details) > self.settings.max_decline_details_length:
            raise InvalidInputError(
                f"Details must be at most {self.settings.max_decline_details_length} characters"
            )
        return details or None

    def _check(self, action: OrderAction, order: Order, driver_id: str) -> None:
        """Raise if the action is not allowed on the order's current state."""
        if not OrderTransitions.can_apply(action, order.status):
            allowed = ", ".join(s.value for s in OrderTransitions.allowed_from(action))
            raise InvalidTransitionError(
                f"Cannot {action.value} an order that is {order.status.value} "
                f"(allowed from: {allowed})"
            )

        if action == OrderAction.ACCEPT and order.is_assigned:
            raise AssignmentConflictError("Order has already been accepted by another driver")

        if action in OrderTransitions.OWNER_ONLY and order.driver_id != driver_id:
            raise AuthorizationError("Only the assigned driver can update this order")

    async def _apply(
        self,
        session: DriverSession,
        order_id: str,
        action: OrderAction,
        build: PlanBuilder,
        tracer: WorkflowTracer | None,
    ) -> TransitionOutcome:
        try:
            session.require_active()
        except EcoWheelsError as e:
            self.logger.log_rejection(action.value, order_id, session.uid, e.code)
            raise

        now = self._clock()
        previous: dict[str, OrderStatus] = {}

        def plan(current: dict[str, Any] | None) -> WritePlan:
            if current is None:
                raise NotFoundError(f"Order {order_id} not found")
            order = Order.model_validate(current)
            self._check(action, order, session.uid)
            previous["status"] = order.status
            return build(order, now)

        start = time.time()
        trace = (
            tracer.trace_operation(action.value, order_id=order_id) if tracer else nullcontext()
        )
        try:
            with trace:
                result = await self.store.transact(ORDERS, order_id, plan)
        except StoreError as e:
            self.logger.log_error(e.message, order_id, action=action.value, driver_id=session.uid)
            raise
        except EcoWheelsError as e:
            self.logger.log_rejection(action.value, order_id, session.uid, e.code)
            raise

        order = Order.model_validate(result.document)
        self.logger.log_transition(
            action.value,
            order_id,
            session.uid,
            duration_ms=(time.time() - start) * 1000,
            from_status=previous["status"].value,
            to_status=order.status.value,
        )

        outcome = TransitionOutcome(action=action, order=order)
        for append in result.appended:
            self.logger.log_side_effect(append.collection, append.id, order_id)
            if append.collection == EARNINGS:
                outcome.earnings = EarningsEntry.model_validate(append.data)
            elif append.collection == ORDER_DECLINES:
                outcome.decline = DeclineRecord.model_validate(append.data)
        return outcome
