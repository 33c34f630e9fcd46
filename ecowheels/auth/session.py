"""Authenticated driver session."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from ecowheels.errors import AuthenticationError
from ecowheels.models.driver import Driver


class DriverSession(BaseModel):
    """The signed-in driver, passed explicitly to every workflow entry point.

    Created by the identity provider on sign-in and invalidated on sign-out.
    """

    session_id: str
    uid: str
    email: str | None = None
    provider: str = "password"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
    profile: Driver | None = None
    invalidated: bool = False

    @property
    def is_active(self) -> bool:
        return not self.invalidated and datetime.now(timezone.utc) < self.expires_at

    def require_active(self) -> None:
        """Raise unless the session can still authorize actions."""
        if not self.is_active:
            raise AuthenticationError("Please sign in again")

    def invalidate(self) -> None:
        self.invalidated = True


class Credential(BaseModel):
    """Result of a successful sign-in or sign-up."""

    uid: str
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    session: DriverSession
