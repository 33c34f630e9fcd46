"""Tests for the Redis document store."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from ecowheels.errors import InvalidTransitionError, NotFoundError, StoreError
from ecowheels.state.documents import (
    DocumentAppend,
    DocumentStore,
    Query,
    WritePlan,
)


@pytest.mark.asyncio
async def test_set_get_and_update(store: DocumentStore) -> None:
    await store.set("widgets", "w1", {"id": "w1", "color": "green", "size": 3})

    updated = await store.update("widgets", "w1", {"size": 4})

    assert updated == {"id": "w1", "color": "green", "size": 4}
    assert await store.get("widgets", "w1") == updated
    assert await store.get("widgets", "missing") is None


@pytest.mark.asyncio
async def test_update_missing_document(store: DocumentStore) -> None:
    with pytest.raises(NotFoundError):
        await store.update("widgets", "missing", {"size": 1})


@pytest.mark.asyncio
async def test_add_generates_or_keeps_id(store: DocumentStore) -> None:
    generated = await store.add("widgets", {"color": "red"})
    kept = await store.add("widgets", {"id": "fixed", "color": "blue"})

    assert kept == "fixed"
    assert (await store.get("widgets", generated))["id"] == generated
    assert len(await store.all("widgets")) == 2


@pytest.mark.asyncio
async def test_query_filters_orders_and_limits(store: DocumentStore) -> None:
    for doc_id, color, rank in [("a", "green", 3), ("b", "green", 1), ("c", "red", 2)]:
        await store.set("widgets", doc_id, {"id": doc_id, "color": color, "rank": rank})

    green = await store.query(Query("widgets").where("color", "==", "green").ordered_by("rank"))
    top = await store.query(Query("widgets").ordered_by("rank", descending=True).limited(2))
    either = await store.query(Query("widgets").where("color", "in", ["red", "blue"]))

    assert [doc["id"] for doc in green] == ["b", "a"]
    assert [doc["id"] for doc in top] == ["a", "c"]
    assert [doc["id"] for doc in either] == ["c"]


def test_query_orders_timestamps_chronologically() -> None:
    documents = [
        {"id": "late", "at": "2024-03-01T10:00:00+00:00"},
        {"id": "none", "at": None},
        {"id": "early", "at": "2024-02-28T23:00:00-05:00"},
    ]

    ordered = Query("things").ordered_by("at").apply(documents)

    assert [doc["id"] for doc in ordered] == ["early", "late", "none"]


@pytest.mark.asyncio
async def test_transact_writes_update_and_appends_together(store: DocumentStore) -> None:
    await store.set("accounts", "acc", {"id": "acc", "balance": 10})

    def plan(current):
        return WritePlan(
            updates={"balance": current["balance"] - 4},
            appends=[DocumentAppend("entries", {"amount": 4}, id="entry-1")],
        )

    result = await store.transact("accounts", "acc", plan)

    assert result.document["balance"] == 6
    assert [append.id for append in result.appended] == ["entry-1"]
    assert await store.get("entries", "entry-1") == {"amount": 4}


@pytest.mark.asyncio
async def test_transact_abort_writes_nothing(store: DocumentStore) -> None:
    await store.set("accounts", "acc", {"id": "acc", "balance": 10})

    def plan(current):
        raise InvalidTransitionError("not allowed")

    with pytest.raises(InvalidTransitionError):
        await store.transact("accounts", "acc", plan)

    assert await store.get("accounts", "acc") == {"id": "acc", "balance": 10}
    assert await store.all("entries") == []


@pytest.mark.asyncio
async def test_concurrent_transactions_both_apply(store: DocumentStore) -> None:
    """A transaction that loses the race re-runs its plan on the new state."""
    await store.set("counters", "c", {"id": "c", "value": 0})

    def increment(current):
        return WritePlan(updates={"value": current["value"] + 1})

    await asyncio.gather(
        store.transact("counters", "c", increment),
        store.transact("counters", "c", increment),
    )

    assert (await store.get("counters", "c"))["value"] == 2


@pytest.mark.asyncio
async def test_transact_gives_up_when_document_keeps_changing(
    state_manager, monkeypatch
) -> None:
    store = DocumentStore(state_manager)
    client = await state_manager.client()
    pipeline = client.pipeline

    class ConflictingPipeline:
        def __init__(self, inner):
            self.inner = inner

        async def __aenter__(self):
            await self.inner.__aenter__()
            return self

        async def __aexit__(self, *exc_info):
            return await self.inner.__aexit__(*exc_info)

        def __getattr__(self, name):
            return getattr(self.inner, name)

        async def execute(self):
            raise WatchError("changed")

    monkeypatch.setattr(
        client, "pipeline", lambda *args, **kwargs: ConflictingPipeline(pipeline(*args, **kwargs))
    )

    with pytest.raises(StoreError):
        await store.transact("counters", "c", lambda current: WritePlan(updates={"value": 1}))


@pytest.mark.asyncio
async def test_subscription_delivers_initial_snapshot_and_changes(store: DocumentStore) -> None:
    await store.set("widgets", "w1", {"id": "w1", "color": "green"})
    snapshots: list[list[dict]] = []
    query = Query("widgets").where("color", "==", "green")

    subscription = await store.subscribe(query, snapshots.append)
    assert [[doc["id"] for doc in snap] for snap in snapshots] == [["w1"]]

    await store.set("widgets", "w2", {"id": "w2", "color": "green"})
    for _ in range(100):
        if len(snapshots) > 1:
            break
        await asyncio.sleep(0.02)

    assert {doc["id"] for doc in snapshots[-1]} == {"w1", "w2"}

    await subscription.close()
    count = len(snapshots)
    await store.set("widgets", "w3", {"id": "w3", "color": "green"})
    await asyncio.sleep(0.2)

    assert subscription.closed
    assert len(snapshots) == count


@pytest.mark.asyncio
async def test_watch_document_delivers_none_for_missing(store: DocumentStore) -> None:
    received = []

    async with await store.watch_document("widgets", "ghost", received.append):
        pass

    assert received == [None]


@pytest.mark.asyncio
async def test_failed_subscribe_releases_pubsub(store, state_manager, monkeypatch) -> None:
    client = await state_manager.client()
    make_pubsub = client.pubsub
    released = []

    def unreachable_pubsub(**kwargs):
        pubsub = make_pubsub(**kwargs)
        close = pubsub.aclose

        async def refuse(*channels):
            raise RedisConnectionError("connection reset")

        async def tracked_close():
            released.append(pubsub)
            await close()

        pubsub.subscribe = refuse
        pubsub.aclose = tracked_close
        return pubsub

    monkeypatch.setattr(client, "pubsub", unreachable_pubsub)

    with pytest.raises(StoreError):
        await store.subscribe(Query("widgets"), lambda snapshot: None)

    assert len(released) == 1
