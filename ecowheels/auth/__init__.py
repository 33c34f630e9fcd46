"""Authentication and driver sessions."""

from ecowheels.auth.provider import AuthStateSubscription, IdentityProvider
from ecowheels.auth.session import Credential, DriverSession

__all__ = ["IdentityProvider", "AuthStateSubscription", "Credential", "DriverSession"]
