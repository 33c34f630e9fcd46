"""Incident and emergency models."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class IncidentType(str, Enum):
    PACKAGE_DAMAGE = "package-damage"
    SAFETY_CONCERN = "safety-concern"
    VEHICLE_ISSUE = "vehicle-issue"
    OTHER = "other"


class IncidentStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class GeoPoint(BaseModel):
    """Geographic location."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class IncidentReport(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: IncidentType
    description: str = Field(min_length=1)
    location: str = Field(min_length=1)
    driver_id: str
    reported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: IncidentStatus = IncidentStatus.PENDING


class EmergencyAlert(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    driver_id: str
    driver_name: str | None = None
    location: GeoPoint
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EmergencyContact(BaseModel):
    name: str
    number: str
