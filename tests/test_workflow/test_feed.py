"""Tests for the live order feed."""

import asyncio

import pytest

from ecowheels.errors import StoreError
from ecowheels.models.decline import DeclineReason
from ecowheels.state.documents import DRIVERS
from ecowheels.workflow.feed import OrderFeed
from ecowheels.workflow.visibility import OrderBuckets


class Recorder:
    """Collects every snapshot pushed by a feed."""

    def __init__(self):
        self.snapshots: list[OrderBuckets] = []

    def __call__(self, buckets: OrderBuckets) -> None:
        self.snapshots.append(buckets)

    @property
    def latest(self) -> OrderBuckets:
        return self.snapshots[-1] if self.snapshots else OrderBuckets()

    def available_ids(self) -> list[str]:
        return [o.id for o in self.latest.available]

    def active_ids(self) -> list[str]:
        return [o.id for o in self.latest.active]


@pytest.mark.asyncio
async def test_feed_pushes_initial_snapshot(store, driver_session, put_order, wait_until) -> None:
    matching = await put_order()
    await put_order(vehicle_type="Electric Vehicle (EV)")
    recorder = Recorder()

    async with OrderFeed(store, driver_session.uid, recorder):
        await wait_until(lambda: recorder.available_ids() == [matching.id])

    assert recorder.active_ids() == []


@pytest.mark.asyncio
async def test_feed_moves_order_between_buckets(
    engine, store, driver_session, pending_order, wait_until
) -> None:
    """Accepting moves the order to active; declining hides it from this driver."""
    recorder = Recorder()

    async with OrderFeed(store, driver_session.uid, recorder):
        await wait_until(lambda: recorder.available_ids() == [pending_order.id])

        await engine.accept(driver_session, pending_order.id)
        await wait_until(
            lambda: recorder.active_ids() == [pending_order.id]
            and recorder.available_ids() == []
        )

        await engine.decline(driver_session, pending_order.id, DeclineReason.DISTANCE)
        await wait_until(
            lambda: recorder.active_ids() == [] and recorder.available_ids() == []
        )


@pytest.mark.asyncio
async def test_feed_follows_vehicle_type_changes(
    store, driver_session, put_order, wait_until
) -> None:
    bike_order = await put_order()
    ev_order = await put_order(vehicle_type="Electric Vehicle (EV)")
    recorder = Recorder()

    async with OrderFeed(store, driver_session.uid, recorder):
        await wait_until(lambda: recorder.available_ids() == [bike_order.id])

        await store.update(DRIVERS, driver_session.uid, {"vehicle_type": "Electric Vehicle (EV)"})

        await wait_until(lambda: recorder.available_ids() == [ev_order.id])


@pytest.mark.asyncio
async def test_driver_without_vehicle_gets_empty_available(
    store, register, put_order, wait_until
) -> None:
    session = await register("noah.singh@example.com", vehicle_type=None)
    await put_order()
    recorder = Recorder()

    async with OrderFeed(store, session.uid, recorder) as feed:
        await wait_until(lambda: len(recorder.snapshots) > 0)
        assert recorder.available_ids() == []
        assert len(feed.subscriptions) == 2


@pytest.mark.asyncio
async def test_closed_feed_stops_pushing(store, driver_session, put_order, wait_until) -> None:
    recorder = Recorder()
    feed = OrderFeed(store, driver_session.uid, recorder)
    await feed.start()
    await wait_until(lambda: len(recorder.snapshots) > 0)
    subscriptions = feed.subscriptions
    assert len(subscriptions) == 3

    await feed.close()
    count = len(recorder.snapshots)
    await put_order()
    await asyncio.sleep(0.2)

    assert feed.subscriptions == []
    assert all(sub.closed for sub in subscriptions)
    assert len(recorder.snapshots) == count


@pytest.mark.asyncio
async def test_failed_start_releases_opened_subscriptions(
    store, driver_session, monkeypatch
) -> None:
    opened = []
    watch_document = store.watch_document

    async def tracked_watch(*args, **kwargs):
        subscription = await watch_document(*args, **kwargs)
        opened.append(subscription)
        return subscription

    async def unavailable_subscribe(query, callback):
        raise StoreError("Document store unavailable during subscribe")

    monkeypatch.setattr(store, "watch_document", tracked_watch)
    monkeypatch.setattr(store, "subscribe", unavailable_subscribe)
    feed = OrderFeed(store, driver_session.uid, Recorder())

    with pytest.raises(StoreError):
        async with feed:
            pass

    assert feed.closed
    assert feed.subscriptions == []
    assert [subscription.closed for subscription in opened] == [True]
