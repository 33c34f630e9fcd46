"""In-place rewrites of stored documents into the current schema."""

from ecowheels.errors import NotFoundError
from ecowheels.models.legacy import normalize_order_document
from ecowheels.models.order import Order
from ecowheels.state.documents import ORDERS, Document, DocumentStore, WritePlan
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)


async def migrate_order(store: DocumentStore, doc_id: str) -> Order:
    """Normalize one stored order and write it back in canonical form.

    Runs inside a transaction on the order, so a transition committed while
    the migration runs makes it normalize the new state instead of
    overwriting it. Legacy keys are removed, not merged.
    """
    migrated: list[Order] = []

    def plan(raw: Document | None) -> WritePlan:
        if raw is None:
            raise NotFoundError(f"Order {doc_id} not found")
        order = normalize_order_document({**raw, "id": doc_id})
        migrated[:] = [order]
        return WritePlan(updates=order.model_dump(mode="json"), replace=True)

    await store.transact(ORDERS, doc_id, plan)
    logger.info("order_migrated", order_id=doc_id, status=migrated[0].status.value)
    return migrated[0]
