"""Delete every driver backend key from Redis: documents, indexes, accounts and sessions."""

import argparse
import asyncio

from ecowheels.state.manager import StateManager

KEY_PATTERNS = ("doc:*", "idx:*", "account:*", "session:*")


async def reset_all_state() -> int:
    state_manager = StateManager()
    client = await state_manager.client()

    deleted = 0
    for pattern in KEY_PATTERNS:
        # SCAN rather than FLUSHDB so unrelated keys in a shared database survive
        async for key in client.scan_iter(match=pattern, count=500):
            deleted += await client.delete(key)

    await state_manager.disconnect()
    return deleted


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    args = parser.parse_args()

    if not args.yes and input("Delete ALL EcoWheels data from Redis? (yes/no): ") != "yes":
        print("Cancelled.")
    else:
        print(f"✓ Deleted {asyncio.run(reset_all_state())} keys")
