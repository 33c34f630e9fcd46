"""Pytest configuration and fixtures."""

import asyncio
import os
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("FEDERATED_SECRET", "test-federated-secret")

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ecowheels.api.dependencies import Services, get_services
from ecowheels.auth.provider import IdentityProvider
from ecowheels.auth.session import DriverSession
from ecowheels.main import app
from ecowheels.models.order import Address, Order
from ecowheels.state.documents import ORDERS, DocumentStore
from ecowheels.state.manager import StateManager
from ecowheels.storage import LocalFileStorage
from ecowheels.workflow.engine import OrderTransitionEngine

TEST_PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture
async def state_manager() -> AsyncGenerator[StateManager, None]:
    """Create a state manager over an isolated in-memory Redis server."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    manager = StateManager(redis_client=client)
    yield manager
    await manager.disconnect()


@pytest.fixture
def store(state_manager: StateManager) -> DocumentStore:
    return DocumentStore(state_manager)


@pytest.fixture
def provider(state_manager: StateManager, store: DocumentStore) -> IdentityProvider:
    return IdentityProvider(state_manager, store)


@pytest.fixture
def engine(store: DocumentStore) -> OrderTransitionEngine:
    return OrderTransitionEngine(store)


@pytest.fixture
def register(
    provider: IdentityProvider,
) -> Callable[..., Awaitable[DriverSession]]:
    """Factory that signs up a driver and returns the open session."""

    async def _register(
        email: str, vehicle_type: str | None = "E-bike", **profile
    ) -> DriverSession:
        profile.setdefault("full_name", email.split("@")[0].replace(".", " ").title())
        if vehicle_type is not None:
            profile["vehicle_type"] = vehicle_type
        credential = await provider.sign_up(email, TEST_PASSWORD, profile)
        return credential.session

    return _register


@pytest_asyncio.fixture
async def driver_session(register) -> DriverSession:
    """Signed-in driver riding an E-bike."""
    return await register("maya.chen@example.com")


@pytest_asyncio.fixture
async def other_session(register) -> DriverSession:
    """A second signed-in driver with the same vehicle type."""
    return await register("liam.oconnor@example.com")


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """Factory for pending E-bike orders."""

    def _make_order(**overrides) -> Order:
        data = {
            "vehicle_type": "E-bike",
            "price": Decimal("12.50"),
            "shipping_item": "Groceries",
            "shipping_weight": 4.5,
            "duration": 25,
            "pickup_address": Address(address1="220 Yonge St", city="Toronto"),
            "delivery_address": Address(address1="100 Queen St W", city="Toronto"),
        }
        data.update(overrides)
        return Order(**data)

    return _make_order


@pytest.fixture
def put_order(store: DocumentStore, make_order) -> Callable[..., Awaitable[Order]]:
    """Factory that builds an order and writes it to the store."""

    async def _put_order(**overrides) -> Order:
        order = make_order(**overrides)
        await store.set(ORDERS, order.id, order.model_dump(mode="json"))
        return order

    return _put_order


@pytest_asyncio.fixture
async def pending_order(put_order) -> Order:
    return await put_order()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds, for assertions on pushed snapshots."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.02)

    return _wait_until


@pytest.fixture
def services(state_manager: StateManager, tmp_path) -> Services:
    """Services wired to the in-memory Redis and a temporary upload directory."""
    storage = LocalFileStorage(str(tmp_path / "uploads"), "http://files.test")
    return Services(state_manager, storage=storage)


@pytest_asyncio.fixture
async def test_client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
