"""Live order feed for one driver."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable

from ecowheels.models.driver import Driver
from ecowheels.models.order import Order
from ecowheels.state.documents import DRIVERS, DocumentStore, Subscription
from ecowheels.utils.logging import get_logger
from ecowheels.workflow.visibility import (
    OrderBuckets,
    active_orders_query,
    available_orders_query,
    classify_orders,
)

logger = get_logger(__name__)

FeedCallback = Callable[[OrderBuckets], Awaitable[None] | None]


class OrderFeed:
    """Keeps a driver's available and active buckets current.

    Owns three subscriptions: the driver's profile, the available-orders query
    and the active-orders query. The available query depends on the driver's
    vehicle type, so it is reopened whenever the profile's vehicle type
    changes. Every snapshot re-classifies and calls ``on_update``.

    Use as an async context manager; leaving it releases every subscription.
    """

    def __init__(
        self,
        store: DocumentStore,
        uid: str,
        on_update: FeedCallback,
        limit: int | None = None,
    ):
        self.store = store
        self.uid = uid
        self.on_update = on_update
        self.limit = limit if limit is not None else store.settings.available_orders_limit

        self.driver: Driver | None = None
        self._available: list[Order] = []
        self._active: list[Order] = []

        self._driver_sub: Subscription | None = None
        self._available_sub: Subscription | None = None
        self._active_sub: Subscription | None = None
        self._vehicle_type: str | None = None
        self._lock = asyncio.Lock()
        self.closed = False

    @property
    def subscriptions(self) -> list[Subscription]:
        return [
            sub
            for sub in (self._driver_sub, self._available_sub, self._active_sub)
            if sub is not None
        ]

    async def start(self) -> "OrderFeed":
        try:
            self._driver_sub = await self.store.watch_document(
                DRIVERS, self.uid, self._on_driver
            )
            self._active_sub = await self.store.subscribe(
                active_orders_query(self.uid), self._on_active
            )
        except BaseException:
            await self.close()
            raise
        logger.info("order_feed_started", uid=self.uid, vehicle_type=self._vehicle_type)
        return self

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for sub in self.subscriptions:
            await sub.close()
        self._driver_sub = self._available_sub = self._active_sub = None
        logger.info("order_feed_closed", uid=self.uid)

    async def __aenter__(self) -> "OrderFeed":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def current(self) -> OrderBuckets:
        driver = self.driver or Driver(uid=self.uid)
        return classify_orders(driver, self._available + self._active, limit=self.limit)

    async def _on_driver(self, document: dict[str, Any] | None) -> None:
        if self.closed:
            return
        self.driver = Driver.model_validate(document) if document else None
        vehicle_type = self.driver.vehicle_type if self.driver else None

        if vehicle_type != self._vehicle_type or (
            vehicle_type is not None and self._available_sub is None
        ):
            await self._resubscribe_available(vehicle_type)
        else:
            await self._publish()

    async def _resubscribe_available(self, vehicle_type: str | None) -> None:
        if self._available_sub is not None:
            await self._available_sub.close()
            self._available_sub = None

        self._vehicle_type = vehicle_type
        self._available = []
        if vehicle_type is None or self.driver is None:
            await self._publish()
            return

        logger.info("order_feed_vehicle_changed", uid=self.uid, vehicle_type=vehicle_type)
        subscription = await self.store.subscribe(
            available_orders_query(self.driver), self._on_available
        )
        if self.closed:
            # Closed while subscribing
            await subscription.close()
            return
        self._available_sub = subscription

    async def _on_available(self, documents: list[dict[str, Any]]) -> None:
        self._available = [Order.model_validate(doc) for doc in documents]
        await self._publish()

    async def _on_active(self, documents: list[dict[str, Any]]) -> None:
        self._active = [Order.model_validate(doc) for doc in documents]
        await self._publish()

    async def _publish(self) -> None:
        if self.closed:
            return
        async with self._lock:
            result = self.on_update(self.current())
            if inspect.isawaitable(result):
                await result
