"""Tests for rewriting stored orders into the canonical schema."""

import json

import fakeredis
import pytest

from ecowheels.errors import NotFoundError
from ecowheels.models.order import OrderStatus
from ecowheels.state import migrations
from ecowheels.state.documents import ORDERS, DocumentStore
from ecowheels.state.manager import StateManager

LEGACY_ORDER = {
    "orderId": "ECO-1001",
    "vehicleType": "E-bike",
    "fee": "$14.75",
    "status": "pending",
    "shippingWeight": "2.5 kg",
    "pickupAddress": "220 Yonge St",
}


@pytest.mark.asyncio
async def test_migrate_order_replaces_legacy_keys(store: DocumentStore) -> None:
    await store.set(ORDERS, "legacy-1", LEGACY_ORDER)

    order = await migrations.migrate_order(store, "legacy-1")

    stored = await store.get(ORDERS, "legacy-1")
    assert order.id == "legacy-1"
    assert stored["order_code"] == "ECO-1001"
    assert stored["price"] == "14.75"
    assert stored["shipping_weight"] == 2.5
    assert not {"orderId", "vehicleType", "fee", "shippingWeight"} & set(stored)


@pytest.mark.asyncio
async def test_migrate_missing_order(store: DocumentStore) -> None:
    with pytest.raises(NotFoundError):
        await migrations.migrate_order(store, "nope")


@pytest.mark.asyncio
async def test_transition_during_migration_is_not_overwritten(monkeypatch) -> None:
    server = fakeredis.FakeServer()
    store = DocumentStore(
        StateManager(fakeredis.FakeAsyncRedis(server=server, decode_responses=True))
    )
    other_writer = fakeredis.FakeRedis(server=server, decode_responses=True)
    await store.set(ORDERS, "legacy-1", LEGACY_ORDER)

    normalize = migrations.normalize_order_document
    calls = []

    def normalize_while_driver_accepts(raw):
        calls.append(raw["status"])
        if len(calls) == 1:
            accepted = {**LEGACY_ORDER, "status": "accepted", "driverId": "driver-7"}
            other_writer.set(f"doc:{ORDERS}:legacy-1", json.dumps(accepted))
        return normalize(raw)

    monkeypatch.setattr(migrations, "normalize_order_document", normalize_while_driver_accepts)

    order = await migrations.migrate_order(store, "legacy-1")

    assert calls == ["pending", "accepted"]
    assert order.status == OrderStatus.ACCEPTED
    stored = await store.get(ORDERS, "legacy-1")
    assert stored["status"] == "accepted"
    assert stored["driver_id"] == "driver-7"
