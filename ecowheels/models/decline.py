"""Decline reasons and the decline audit record."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class DeclineReason(str, Enum):
    """Fixed set of reasons a driver can give for declining an order."""

    DISTANCE = "DISTANCE"
    PAYMENT = "PAYMENT"
    AREA = "AREA"
    WEATHER = "WEATHER"
    VEHICLE = "VEHICLE"
    SCHEDULE = "SCHEDULE"
    PACKAGE = "PACKAGE"
    OTHER = "OTHER"


class DeclineRecord(BaseModel):
    """Append-only audit entry written once per decline action."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    order_id: str
    driver_id: str
    reason: DeclineReason
    details: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    order_snapshot: dict[str, Any] = Field(default_factory=dict)
