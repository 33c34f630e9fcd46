"""Redis connection and key/value helpers shared by the store and auth layers."""

import json
from typing import Any

import redis.asyncio as redis

from ecowheels.config import get_settings
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)


def _encode(value: Any) -> Any:
    return json.dumps(value) if isinstance(value, (dict, list)) else value


def _decode(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


class StateManager:
    """Owns the Redis client used by every persistence component.

    A client can be injected (tests pass a fakeredis instance); otherwise one is
    created lazily from ``settings.redis_url`` on first use.
    """

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        self.redis_url = get_settings().redis_url
        self.redis_client: redis.Redis | None = redis_client

    async def connect(self) -> None:
        if self.redis_client is not None:
            return
        self.redis_client = redis.from_url(
            self.redis_url, encoding="utf-8", decode_responses=True
        )
        logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        if self.redis_client is None:
            return
        await self.redis_client.aclose()
        self.redis_client = None
        logger.info("redis_disconnected")

    async def client(self) -> redis.Redis:
        """Return the connected client, connecting on first use."""
        await self.connect()
        return self.redis_client

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a scalar, or a dict/list as JSON, expiring after ``ttl`` seconds."""
        await (await self.client()).set(key, _encode(value), ex=ttl)
        logger.debug("state_set", key=key, ttl=ttl)

    async def get(self, key: str) -> Any:
        """Read a key, decoding JSON where possible. Missing keys give None."""
        return _decode(await (await self.client()).get(key))

    async def delete(self, key: str) -> None:
        await (await self.client()).delete(key)
        logger.debug("state_deleted", key=key)

    async def set_if_absent(self, key: str, value: str) -> bool:
        """Claim ``key`` for ``value``; False when another writer got there first."""
        return bool(await (await self.client()).set(key, value, nx=True))


_state_manager: StateManager | None = None


async def get_state_manager() -> StateManager:
    """Process-wide manager, connected on first call."""
    global _state_manager
    if _state_manager is None:
        _state_manager = StateManager()
        await _state_manager.connect()
    return _state_manager
