"""Which orders a driver sees as available or active."""

from collections.abc import Iterable

from pydantic import BaseModel, Field

from ecowheels.models.driver import Driver
from ecowheels.models.order import ACTIVE_STATUSES, Order, OrderStatus
from ecowheels.state.documents import ORDERS, Query


class OrderBuckets(BaseModel):
    """Disjoint views of the order set for one driver."""

    available: list[Order] = Field(default_factory=list)
    active: list[Order] = Field(default_factory=list)


def is_available(order: Order, driver: Driver) -> bool:
    """Pending, matching the driver's vehicle, and never declined by this driver."""
    return (
        order.status == OrderStatus.PENDING
        and driver.vehicle_type is not None
        and order.vehicle_type == driver.vehicle_type
        and not order.has_declined(driver.uid)
    )


def is_active(order: Order, driver_id: str) -> bool:
    """Assigned to the driver and not yet completed."""
    return order.driver_id == driver_id and order.status in ACTIVE_STATUSES


def _accepted_sort_key(order: Order) -> tuple:
    return (order.accepted_at is None, order.accepted_at or order.created_at)


def classify_orders(
    driver: Driver,
    orders: Iterable[Order],
    limit: int | None = None,
) -> OrderBuckets:
    """Split an order set into the driver's available and active orders."""
    available: list[Order] = []
    active: list[Order] = []

    for order in orders:
        if is_active(order, driver.uid):
            active.append(order)
        elif is_available(order, driver):
            available.append(order)

    available.sort(key=lambda order: order.created_at)
    active.sort(key=_accepted_sort_key)
    if limit is not None:
        available = available[:limit]

    return OrderBuckets(available=available, active=active)


def available_orders_query(driver: Driver) -> Query:
    """Store query backing the available bucket.

    Declined-driver exclusion cannot be expressed as a filter, so the query
    carries no limit; ``classify_orders`` applies both the exclusion and the
    limit after the fetch.
    """
    return (
        Query(ORDERS)
        .where("status", "==", OrderStatus.PENDING)
        .where("vehicle_type", "==", driver.vehicle_type)
        .ordered_by("created_at")
    )


def active_orders_query(driver_id: str) -> Query:
    """Store query backing the active bucket."""
    return (
        Query(ORDERS)
        .where("driver_id", "==", driver_id)
        .where("status", "in", sorted(ACTIVE_STATUSES, key=lambda s: s.value))
        .ordered_by("accepted_at")
    )
