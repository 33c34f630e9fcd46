"""Rewrite every stored order document in the canonical schema."""

import argparse
import asyncio

from pydantic import ValidationError

from ecowheels.errors import NotFoundError
from ecowheels.models.legacy import normalize_order_document
from ecowheels.state.documents import ORDERS, DocumentStore
from ecowheels.state.manager import StateManager
from ecowheels.state.migrations import migrate_order


async def migrate_orders(dry_run: bool = False) -> None:
    print("\nMigrating orders...")

    state_manager = StateManager()
    await state_manager.connect()
    store = DocumentStore(state_manager)
    client = await state_manager.client()

    # Read ids from the index so documents without an "id" field keep theirs
    ids = sorted(await client.smembers("idx:orders"))
    migrated = failed = 0

    for doc_id in ids:
        try:
            if dry_run:
                raw = await store.get(ORDERS, doc_id)
                if raw is None:
                    continue
                order = normalize_order_document({**raw, "id": doc_id})
            else:
                order = await migrate_order(store, doc_id)
        except NotFoundError:
            continue
        except (ValidationError, ValueError) as e:
            failed += 1
            print(f"  ❌ {doc_id}: {e}")
            continue

        migrated += 1
        print(f"  ✓ {doc_id} -> {order.order_code} ({order.status.value})")

    await state_manager.disconnect()

    action = "Would migrate" if dry_run else "Migrated"
    print(f"\n✓ {action} {migrated} orders, {failed} failed\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()
    asyncio.run(migrate_orders(dry_run=args.dry_run))
