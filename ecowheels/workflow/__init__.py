"""Order lifecycle workflow: visibility, transitions, decline capture, live feed."""

from ecowheels.workflow.decline import DeclineForm
from ecowheels.workflow.engine import OrderTransitionEngine, TransitionOutcome
from ecowheels.workflow.feed import OrderFeed
from ecowheels.workflow.states import OrderAction, OrderTransitions
from ecowheels.workflow.visibility import OrderBuckets, classify_orders

__all__ = [
    "DeclineForm",
    "OrderAction",
    "OrderBuckets",
    "OrderFeed",
    "OrderTransitionEngine",
    "OrderTransitions",
    "TransitionOutcome",
    "classify_orders",
]
