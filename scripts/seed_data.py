"""Populate Redis with demo drivers, pending orders and ratings for local development."""

import asyncio
from decimal import Decimal

from ecowheels.auth.provider import IdentityProvider
from ecowheels.errors import ConflictError
from ecowheels.models.order import Address, Order
from ecowheels.state.documents import ORDERS, RATINGS, DocumentStore
from ecowheels.state.manager import StateManager

DEMO_PASSWORD = "ecowheels-demo"


async def seed_drivers(state_manager: StateManager, store: DocumentStore) -> list[str]:
    print("Registering demo drivers...")

    provider = IdentityProvider(state_manager, store)
    drivers = [
        ("maya.chen@example.com", "Maya Chen", "+14165550101", "E-bike"),
        ("liam.oconnor@example.com", "Liam O'Connor", "+14165550102", "Bike"),
        ("sofia.reyes@example.com", "Sofia Reyes", "+14165550103", "Electric Vehicle (EV)"),
    ]

    uids = []
    for email, name, phone, vehicle_type in drivers:
        try:
            credential = await provider.sign_up(
                email,
                DEMO_PASSWORD,
                {"full_name": name, "phone_number": phone, "vehicle_type": vehicle_type},
            )
        except ConflictError:
            print(f"  - {email} already registered, skipping")
            continue
        uids.append(credential.uid)
        print(f"  ✓ Added {name} ({vehicle_type})")

    print(f"✓ {len(uids)} new drivers\n")
    return uids


async def seed_orders(store: DocumentStore) -> None:
    """One or more pending orders per vehicle type, all picked up from the same warehouse."""
    print("Creating orders...")

    warehouse = Address(
        address1="220 Yonge St",
        city="Toronto",
        province="ON",
        postal_code="M5B 2H1",
        country="Canada",
    )
    orders = [
        Order(
            vehicle_type="E-bike",
            price=Decimal("12.50"),
            shipping_item="Groceries",
            shipping_weight=4.5,
            duration=25,
            pickup_address=warehouse,
            delivery_address=Address(address1="100 Queen St W", city="Toronto", province="ON"),
        ),
        Order(
            vehicle_type="E-bike",
            price=Decimal("9.75"),
            shipping_item="Documents",
            shipping_weight=0.5,
            duration=15,
            pickup_address=warehouse,
            delivery_address=Address(address1="55 Bloor St W", city="Toronto", province="ON"),
        ),
        Order(
            vehicle_type="Bike",
            price=Decimal("7.00"),
            shipping_item="Coffee order",
            shipping_weight=1.2,
            duration=10,
            pickup_address=warehouse,
            delivery_address=Address(address1="1 Dundas St E", city="Toronto", province="ON"),
        ),
        Order(
            vehicle_type="Electric Vehicle (EV)",
            price=Decimal("24.00"),
            shipping_item="Furniture parts",
            shipping_weight=18.0,
            duration=40,
            pickup_address=warehouse,
            delivery_address=Address(address1="300 Borough Dr", city="Toronto", province="ON"),
        ),
    ]

    for order in orders:
        await store.set(ORDERS, order.id, order.model_dump(mode="json"))
        print(f"  ✓ Added {order.order_code} ({order.vehicle_type}, ${order.price})")

    print(f"✓ {len(orders)} pending orders\n")


async def seed_ratings(store: DocumentStore, uids: list[str]) -> None:
    print("Rating demo drivers...")

    for uid in uids:
        for rating in (5, 4, 5):
            await store.add(RATINGS, {"driver_id": uid, "rating": rating})

    print(f"✓ {3 * len(uids)} ratings\n")


async def main() -> None:
    state_manager = StateManager()
    await state_manager.connect()
    store = DocumentStore(state_manager)

    uids = await seed_drivers(state_manager, store)
    await seed_orders(store)
    await seed_ratings(store, uids)

    await state_manager.disconnect()

    print(f"Demo drivers sign in with password: {DEMO_PASSWORD}")


if __name__ == "__main__":
    asyncio.run(main())
