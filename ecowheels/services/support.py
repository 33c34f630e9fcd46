"""Incident reports and emergency alerts."""

from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from ecowheels.auth.session import DriverSession
from ecowheels.errors import InvalidInputError
from ecowheels.models.support import (
    EmergencyAlert,
    EmergencyContact,
    GeoPoint,
    IncidentReport,
    IncidentType,
)
from ecowheels.state.documents import EMERGENCIES, INCIDENTS, DocumentStore
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)

EMERGENCY_CONTACTS = [
    EmergencyContact(name="Police", number="911"),
    EmergencyContact(name="EcoWheels Support", number="1-800-ECO-HELP"),
    EmergencyContact(name="Medical Emergency", number="911"),
]


class SupportService:
    """Append-only incident and emergency records. Writes are not retried."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] | None = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def report_incident(
        self,
        session: DriverSession,
        incident_type: IncidentType | str,
        description: str,
        location: str,
    ) -> IncidentReport:
        session.require_active()
        try:
            report = IncidentReport(
                type=incident_type,
                description=(description or "").strip(),
                location=(location or "").strip(),
                driver_id=session.uid,
                reported_at=self._clock(),
            )
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise InvalidInputError(f"Please fill in all required fields: {fields}") from e

        await self.store.set(INCIDENTS, report.id, report.model_dump(mode="json"))
        logger.info(
            "incident_reported",
            incident_id=report.id,
            driver_id=session.uid,
            incident_type=report.type.value,
        )
        return report

    async def trigger_emergency(
        self,
        session: DriverSession,
        latitude: float,
        longitude: float,
    ) -> EmergencyAlert:
        """Record an emergency at the driver's current position."""
        session.require_active()
        try:
            location = GeoPoint(latitude=latitude, longitude=longitude)
        except ValidationError as e:
            raise InvalidInputError("Unable to get your location") from e

        driver_name = session.profile.full_name if session.profile else None
        alert = EmergencyAlert(
            driver_id=session.uid,
            driver_name=driver_name,
            location=location,
            timestamp=self._clock(),
        )
        await self.store.set(EMERGENCIES, alert.id, alert.model_dump(mode="json"))

        logger.warning(
            "emergency_triggered",
            alert_id=alert.id,
            driver_id=session.uid,
            latitude=latitude,
            longitude=longitude,
        )
        return alert

    def contacts(self) -> list[EmergencyContact]:
        return list(EMERGENCY_CONTACTS)
