"""Order-related data models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """Order status progression."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    PICKED_UP = "picked-up"
    IN_TRANSIT = "in-transit"
    COMPLETED = "completed"
    DECLINED = "declined"


# Statuses in which an order carries a driver assignment
ASSIGNED_STATUSES = frozenset(
    {
        OrderStatus.ACCEPTED,
        OrderStatus.PICKED_UP,
        OrderStatus.IN_TRANSIT,
        OrderStatus.COMPLETED,
    }
)

# Statuses shown to the assigned driver as work in progress
ACTIVE_STATUSES = frozenset(
    {OrderStatus.ACCEPTED, OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT}
)


def _order_code() -> str:
    return f"ORD-{uuid4().hex[:8].upper()}"


class Address(BaseModel):
    """Structured postal address."""

    address1: str
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    country: str | None = None

    def format(self) -> str:
        """Single-line rendering for display and map links."""
        parts = [
            self.address1,
            self.address2,
            self.city,
            self.province,
            self.postal_code,
            self.country,
        ]
        return ", ".join(part for part in parts if part)


class Order(BaseModel):
    """A delivery job."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    order_code: str = Field(default_factory=_order_code)
    status: OrderStatus = OrderStatus.PENDING
    vehicle_type: str | None = None

    # Assignment
    driver_id: str | None = None

    # Commercial
    price: Decimal = Field(default=Decimal("0.00"), ge=0)
    shipping_item: str | None = None
    shipping_weight: float | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, ge=0, description="Estimated minutes")

    # Addresses
    pickup_address: Address | None = None
    delivery_address: Address | None = None

    # Decline tracking
    decline_count: int = Field(default=0, ge=0)
    declined_drivers: list[str] = Field(default_factory=list)

    # Timing
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    accepted_at: datetime | None = None
    picked_up_at: datetime | None = None
    in_transit_at: datetime | None = None
    completed_at: datetime | None = None
    last_declined_at: datetime | None = None

    @property
    def is_assigned(self) -> bool:
        return self.driver_id is not None

    def has_declined(self, driver_id: str) -> bool:
        """Check whether a driver has declined this order before."""
        return driver_id in self.declined_drivers

    def is_consistent(self) -> bool:
        """Assignment and status agree: a driver is set iff the status is an assigned one."""
        return self.is_assigned == (self.status in ASSIGNED_STATUSES)
