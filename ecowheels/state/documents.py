"""Document collections, filtered queries and live subscriptions on Redis.

Layout:

- ``doc:{collection}:{id}`` holds the JSON document
- ``idx:{collection}`` is the set of ids in the collection
- ``changes:{collection}`` receives the id of every written document

Writes to a single document go through :meth:`DocumentStore.transact`, which
watches the document key so that the read, the caller's validation and the
write (plus any side-effect documents) commit together or not at all.
"""

import asyncio
import inspect
import json
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import redis.asyncio as redis
from pydantic_core import to_jsonable_python
from redis.exceptions import RedisError, WatchError

from ecowheels.config import get_settings
from ecowheels.errors import NotFoundError, StoreError
from ecowheels.state.manager import StateManager
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)

# Collections
ORDERS = "orders"
DRIVERS = "drivers"
EARNINGS = "earnings"
ORDER_DECLINES = "order_declines"
PAYOUTS = "payouts"
PAYOUT_ACCOUNTS = "payout_accounts"
INCIDENTS = "incidents"
EMERGENCIES = "emergencies"
RATINGS = "ratings"

Document = dict[str, Any]
SnapshotCallback = Callable[[Any], Awaitable[None] | None]
Planner = Callable[[Document | None], "WritePlan | Awaitable[WritePlan]"]


class FilterOp(str, Enum):
    EQ = "=="
    IN = "in"


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, document: Document) -> bool:
        actual = document.get(self.field)
        if self.op == FilterOp.EQ:
            return actual == self.value
        return actual in self.value


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (1, 0, 0)
    if isinstance(value, bool):
        return (0, 0, int(value))
    if isinstance(value, (int, float)):
        return (0, 0, value)
    if isinstance(value, str):
        try:
            return (0, 1, datetime.fromisoformat(value).timestamp())
        except ValueError:
            return (0, 2, value)
    return (0, 3, str(value))


@dataclass(frozen=True)
class Query:
    """Equality/membership filters, ordering and a result limit over one collection."""

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        filter_op = FilterOp(op)
        value = to_jsonable_python(value)
        if filter_op == FilterOp.IN:
            value = list(value)
        return replace(self, filters=self.filters + (FieldFilter(field_name, filter_op, value),))

    def ordered_by(self, field_name: str, descending: bool = False) -> "Query":
        return replace(self, order_by=field_name, descending=descending)

    def limited(self, limit: int) -> "Query":
        return replace(self, limit=limit)

    def matches(self, document: Document) -> bool:
        return all(f.matches(document) for f in self.filters)

    def apply(self, documents: list[Document]) -> list[Document]:
        """Filter, order and limit a list of documents."""
        results = [doc for doc in documents if self.matches(doc)]
        if self.order_by:
            key = self.order_by
            present = [doc for doc in results if doc.get(key) is not None]
            missing = [doc for doc in results if doc.get(key) is None]
            present.sort(key=lambda doc: _sort_key(doc.get(key)), reverse=self.descending)
            results = present + missing
        if self.limit is not None:
            results = results[: self.limit]
        return results


@dataclass
class DocumentAppend:
    """A new document written in the same transaction as an update."""

    collection: str
    data: Document
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class WritePlan:
    """Field updates for the watched document plus side-effect documents.

    With ``replace`` the updates become the whole document instead of being
    merged over the stored fields.
    """

    updates: Document
    appends: list[DocumentAppend] = field(default_factory=list)
    replace: bool = False


@dataclass
class TransactionResult:
    document: Document
    appended: list[DocumentAppend]


@asynccontextmanager
async def store_errors(operation: str, **context: Any) -> AsyncGenerator[None, None]:
    """Convert Redis failures into StoreError."""
    try:
        yield
    except RedisError as e:
        logger.error("store_operation_failed", operation=operation, error=str(e), **context)
        raise StoreError(f"Document store unavailable during {operation}") from e


class Subscription:
    """Live snapshot listener; deliver on start and after every change notification."""

    def __init__(
        self,
        client: redis.Redis,
        channel: str,
        fetch: Callable[[], Awaitable[Any]],
        callback: SnapshotCallback,
    ):
        self.client = client
        self.channel = channel
        self._fetch = fetch
        self._callback = callback
        self._pubsub = None
        self._task: asyncio.Task | None = None
        self.closed = False

    async def start(self) -> "Subscription":
        self._pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        try:
            async with store_errors("subscribe", channel=self.channel):
                await self._pubsub.subscribe(self.channel)
            await self._deliver()
        except BaseException:
            await self.close()
            raise
        self._task = asyncio.create_task(self._listen())
        logger.debug("subscription_started", channel=self.channel)
        return self

    async def _listen(self) -> None:
        while not self.closed:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
            except RedisError as e:
                logger.error("subscription_receive_failed", channel=self.channel, error=str(e))
                await asyncio.sleep(1.0)
                continue
            if message is None:
                continue
            await self._deliver()

    async def _deliver(self) -> None:
        try:
            snapshot = await self._fetch()
            result = self._callback(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("subscription_delivery_failed", channel=self.channel, error=str(e))

    async def close(self) -> None:
        """Stop listening and release the pub/sub connection."""
        if self.closed:
            return
        self.closed = True
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        if self._pubsub is not None:
            if self._pubsub.subscribed:
                with suppress(RedisError):
                    await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        logger.debug("subscription_closed", channel=self.channel)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class DocumentStore:
    """Collection-oriented document store backed by Redis."""

    def __init__(self, state_manager: StateManager):
        self.state = state_manager
        self.settings = get_settings()

    def _key(self, collection: str, doc_id: str) -> str:
        return f"doc:{collection}:{doc_id}"

    def _index(self, collection: str) -> str:
        return f"idx:{collection}"

    def _channel(self, collection: str) -> str:
        return f"changes:{collection}"

    @staticmethod
    def _dump(document: Document) -> str:
        return json.dumps(to_jsonable_python(document))

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Read a single document."""
        client = await self.state.client()
        async with store_errors("get", collection=collection, doc_id=doc_id):
            raw = await client.get(self._key(collection, doc_id))
        return json.loads(raw) if raw else None

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or overwrite a document."""
        client = await self.state.client()
        async with store_errors("set", collection=collection, doc_id=doc_id):
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._key(collection, doc_id), self._dump(data))
                pipe.sadd(self._index(collection), doc_id)
                pipe.publish(self._channel(collection), doc_id)
                await pipe.execute()
        logger.debug("document_set", collection=collection, doc_id=doc_id)

    async def add(self, collection: str, data: Document) -> str:
        """Append a new document; the id comes from ``data['id']`` or is generated."""
        doc_id = data.get("id") or str(uuid4())
        await self.set(collection, doc_id, {**data, "id": doc_id})
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Document) -> Document:
        """Merge fields into an existing document."""

        def plan(current: Document | None) -> WritePlan:
            if current is None:
                raise NotFoundError(f"{collection} document {doc_id} not found")
            return WritePlan(updates=fields)

        result = await self.transact(collection, doc_id, plan)
        return result.document

    async def transact(
        self,
        collection: str,
        doc_id: str,
        plan: Planner,
    ) -> TransactionResult:
        """Read-validate-write one document atomically.

        ``plan`` receives the current document (or None) and returns the writes
        to apply, or raises to abort without writing. If the document changes
        between the read and the commit, ``plan`` runs again on the new state.
        ``plan`` may be a coroutine function; reads it makes are then covered by
        the same retry, as long as every writer of that data touches this document.
        """
        client = await self.state.client()
        key = self._key(collection, doc_id)

        for attempt in range(self.settings.store_max_retries):
            try:
                async with client.pipeline(transaction=True) as pipe:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    current = json.loads(raw) if raw else None

                    write = plan(current)
                    if inspect.isawaitable(write):
                        write = await write
                    updates = to_jsonable_python(write.updates)
                    document = updates if write.replace else {**(current or {}), **updates}

                    pipe.multi()
                    pipe.set(key, self._dump(document))
                    pipe.sadd(self._index(collection), doc_id)
                    for append in write.appends:
                        pipe.set(self._key(append.collection, append.id), self._dump(append.data))
                        pipe.sadd(self._index(append.collection), append.id)
                    pipe.publish(self._channel(collection), doc_id)
                    for append in write.appends:
                        pipe.publish(self._channel(append.collection), append.id)
                    await pipe.execute()

                return TransactionResult(document=document, appended=write.appends)

            except WatchError:
                logger.info(
                    "document_write_conflict",
                    collection=collection,
                    doc_id=doc_id,
                    attempt=attempt + 1,
                )
            except RedisError as e:
                logger.error(
                    "store_operation_failed",
                    operation="transact",
                    collection=collection,
                    doc_id=doc_id,
                    error=str(e),
                )
                raise StoreError("Document store unavailable, please try again") from e

        raise StoreError(
            f"{collection} document {doc_id} is changing too quickly, please try again"
        )

    async def all(self, collection: str) -> list[Document]:
        """Read every document in a collection."""
        client = await self.state.client()
        async with store_errors("scan", collection=collection):
            ids = await client.smembers(self._index(collection))
            if not ids:
                return []
            raws = await client.mget([self._key(collection, doc_id) for doc_id in sorted(ids)])
        return [json.loads(raw) for raw in raws if raw]

    async def query(self, query: Query) -> list[Document]:
        """Run a filtered query."""
        return query.apply(await self.all(query.collection))

    async def subscribe(self, query: Query, callback: SnapshotCallback) -> Subscription:
        """Deliver the query result now and again whenever the collection changes."""
        client = await self.state.client()
        subscription = Subscription(
            client,
            self._channel(query.collection),
            lambda: self.query(query),
            callback,
        )
        return await subscription.start()

    async def watch_document(
        self,
        collection: str,
        doc_id: str,
        callback: SnapshotCallback,
    ) -> Subscription:
        """Deliver a single document now and again whenever its collection changes."""
        client = await self.state.client()
        subscription = Subscription(
            client,
            self._channel(collection),
            lambda: self.get(collection, doc_id),
            callback,
        )
        return await subscription.start()
