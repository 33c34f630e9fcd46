"""Driver profile models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, EmailStr, Field


class DriverStatus(str, Enum):
    """Driver presence states."""

    ONLINE = "Online"
    OFFLINE = "Offline"
    ACTIVE = "active"


class DocumentType(str, Enum):
    """Documents a driver must upload to complete the profile."""

    DRIVER_LICENSE = "driver_license"
    INSURANCE = "insurance"


class ProfileCompletion(str, Enum):
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"


VEHICLE_TYPES = ["Bike", "E-bike", "E-scooter", "Electric Vehicle (EV)"]


class DocumentRef(BaseModel):
    """Reference to an uploaded document."""

    name: str
    path: str
    url: str
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DriverDocuments(BaseModel):
    driver_license: DocumentRef | None = None
    insurance: DocumentRef | None = None

    def missing(self) -> list[DocumentType]:
        return [
            document_type
            for document_type in DocumentType
            if getattr(self, document_type.value) is None
        ]


class Driver(BaseModel):
    """Delivery driver profile, keyed by the identity provider uid."""

    uid: str
    email: EmailStr | None = None
    full_name: str | None = None
    phone_number: str | None = None
    vehicle_type: str | None = None
    address: str | None = None
    photo_url: str | None = None
    documents: DriverDocuments = Field(default_factory=DriverDocuments)

    # Operational state
    status: DriverStatus = DriverStatus.OFFLINE
    green_score: int = Field(default=0, ge=0)
    available_rewards: list[str] = Field(default_factory=list)
    profile_completion_status: ProfileCompletion = ProfileCompletion.INCOMPLETE

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None
    last_logged_in: datetime | None = None
    last_logged_out: datetime | None = None

    @property
    def is_profile_complete(self) -> bool:
        return self.profile_completion_status == ProfileCompletion.COMPLETE


class ProfileUpdate(BaseModel):
    """Editable profile fields; unset fields are left unchanged."""

    full_name: str | None = None
    phone_number: str | None = None
    vehicle_type: str | None = None
    address: str | None = None
