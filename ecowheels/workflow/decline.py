"""Decline reason capture."""

from ecowheels.auth.session import DriverSession
from ecowheels.errors import InvalidInputError, InvalidTransitionError
from ecowheels.models.decline import DeclineReason
from ecowheels.workflow.engine import OrderTransitionEngine, TransitionOutcome

# Labels shown next to each reason
REASON_LABELS = {
    DeclineReason.DISTANCE: "Too far away",
    DeclineReason.PAYMENT: "Payment too low",
    DeclineReason.AREA: "Unfamiliar or unsafe area",
    DeclineReason.WEATHER: "Bad weather",
    DeclineReason.VEHICLE: "Vehicle not suitable",
    DeclineReason.SCHEDULE: "Schedule conflict",
    DeclineReason.PACKAGE: "Package too large or heavy",
    DeclineReason.OTHER: "Other",
}


class DeclineForm:
    """Collects a decline reason and optional details for one order.

    The engine is only called on ``submit`` and only once a reason has been
    selected. A form is single use: after a submit or a cancel it is closed.
    """

    def __init__(self, reason: DeclineReason | str | None = None, details: str | None = None):
        self.reason: DeclineReason | None = None
        self.details = details
        self.closed = False
        if reason:
            self.select(reason)

    def select(self, reason: DeclineReason | str) -> None:
        try:
            self.reason = DeclineReason(reason)
        except ValueError as e:
            raise InvalidInputError(f"Unknown decline reason: {reason}") from e

    def _ensure_open(self) -> None:
        if self.closed:
            raise InvalidTransitionError("This decline form has already been closed")

    async def submit(
        self,
        engine: OrderTransitionEngine,
        session: DriverSession,
        order_id: str,
    ) -> TransitionOutcome:
        self._ensure_open()
        if self.reason is None:
            raise InvalidInputError("Please select a reason for declining")

        outcome = await engine.decline(session, order_id, self.reason, self.details)
        self.closed = True
        return outcome

    def cancel(self) -> None:
        """Discard the form without touching the order."""
        self._ensure_open()
        self.closed = True
