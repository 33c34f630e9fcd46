"""Order lifecycle state machine."""

from enum import Enum

from ecowheels.models.order import OrderStatus


class OrderAction(str, Enum):
    """Driver actions that move an order through its lifecycle."""

    ACCEPT = "accept"
    DECLINE = "decline"
    PICKUP = "pickup"
    START_TRANSIT = "start_transit"
    COMPLETE = "complete"


class OrderTransitions:
    """Valid order transitions, keyed by action then current status."""

    TRANSITIONS = {
        OrderAction.ACCEPT: {
            OrderStatus.PENDING: OrderStatus.ACCEPTED,
        },
        # Recorded from any status; only the holder of an accepted order releases it
        OrderAction.DECLINE: {
            **{status: status for status in OrderStatus},
            OrderStatus.ACCEPTED: OrderStatus.PENDING,
        },
        OrderAction.PICKUP: {
            OrderStatus.ACCEPTED: OrderStatus.PICKED_UP,
        },
        OrderAction.START_TRANSIT: {
            OrderStatus.PICKED_UP: OrderStatus.IN_TRANSIT,
        },
        OrderAction.COMPLETE: {
            OrderStatus.PICKED_UP: OrderStatus.COMPLETED,
            OrderStatus.IN_TRANSIT: OrderStatus.COMPLETED,
        },
    }

    # Actions only the assigned driver may perform
    OWNER_ONLY = frozenset(
        {OrderAction.PICKUP, OrderAction.START_TRANSIT, OrderAction.COMPLETE}
    )

    # Timestamp written the first time an action is applied
    TIMESTAMP_FIELDS = {
        OrderAction.ACCEPT: "accepted_at",
        OrderAction.PICKUP: "picked_up_at",
        OrderAction.START_TRANSIT: "in_transit_at",
        OrderAction.COMPLETE: "completed_at",
    }

    @classmethod
    def can_apply(cls, action: OrderAction, from_status: OrderStatus) -> bool:
        """Check if an action is valid from the given status."""
        return from_status in cls.TRANSITIONS.get(action, {})

    @classmethod
    def target(cls, action: OrderAction, from_status: OrderStatus) -> OrderStatus:
        return cls.TRANSITIONS[action][from_status]

    @classmethod
    def allowed_from(cls, action: OrderAction) -> list[OrderStatus]:
        return list(cls.TRANSITIONS.get(action, {}))
