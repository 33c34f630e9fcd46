"""Shared service wiring and request dependencies."""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ecowheels.auth.provider import IdentityProvider
from ecowheels.auth.session import DriverSession
from ecowheels.errors import AuthenticationError
from ecowheels.services import (
    EarningsService,
    GamificationService,
    ProfileService,
    SupportService,
)
from ecowheels.state.documents import DocumentStore
from ecowheels.state.manager import StateManager, get_state_manager
from ecowheels.storage import FileStorage, create_file_storage
from ecowheels.workflow.engine import OrderTransitionEngine

bearer_scheme = HTTPBearer(auto_error=False)


class Services:
    """Every component the API talks to, built over one state manager."""

    def __init__(self, state_manager: StateManager, storage: FileStorage | None = None):
        self.state = state_manager
        self.store = DocumentStore(state_manager)
        self.auth = IdentityProvider(state_manager, self.store)
        self.engine = OrderTransitionEngine(self.store)
        self.storage = storage or create_file_storage()
        self.profiles = ProfileService(self.store, self.storage)
        self.earnings = EarningsService(self.store)
        self.gamification = GamificationService(self.store)
        self.support = SupportService(self.store)


# Global services instance
_services: Services | None = None


async def get_services() -> Services:
    """Get the global services instance."""
    global _services
    if _services is None:
        _services = Services(await get_state_manager())
    return _services


async def get_current_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> DriverSession:
    """Resolve the bearer token into an active driver session."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")
    return await services.auth.resolve_session(credentials.credentials)
