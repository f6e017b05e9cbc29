"""
Read-modify-write logic for the order collections.

OrderRepository is the only writer of the persistent store. Every
operation fetches a whole collection document, changes it locally and
writes the whole document back; the store has no row-level write.

Concurrency:
Clients in other processes write the same documents. With
WriteMode.LAST_WRITER_WINS a write computed from a stale read silently
replaces whatever landed in between (the lost-update hazard). With
WriteMode.CONDITIONAL, the default, each write carries the revision it
was computed from, and a revision conflict re-runs the entire cycle
against a fresh read, up to ``max_write_attempts`` times.

Archive:
Archiving is two non-atomic phases: (a) append a DeletedOrderRecord to
the deleted collection, (b) remove the order from the active collection.
An interruption between them leaves the order in both collections, never
in neither. archive() on such an order only re-runs phase (b).

Phase (a) copies the order as read at the start of archive(), with no
revision check against the active collection. An update from another
client that lands before phase (b) is not carried into the deleted copy;
phase (b) logs a warning when the record it removes differs from the
archived copy.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ValidationError

from ledger.domain import (
    ACTIVE_ORDERS_KEY,
    DELETED_ORDERS_KEY,
    CreateOrderRequest,
    DeletedOrderRecord,
    OrderPatch,
    OrderRecord,
    WriteMode,
)
from ledger.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    PartialArchiveError,
    RevisionConflictError,
    StoreUnavailableError,
)
from ledger.repositories import PersistentStore, ProductCatalog
from ledger.validation import (
    ensure_persistent_store,
    ensure_product_catalog,
    parse_request,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)

Records = List[Dict[str, Any]]
# Returns the new collection (None to skip the write) and a result value.
Modification = Callable[[Records], Awaitable[Tuple[Optional[Records], T]]]

DEFAULT_MAX_WRITE_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_order_id() -> str:
    return str(uuid.uuid4())


def _find(records: Records, order_id: str) -> Optional[int]:
    for index, raw in enumerate(records):
        if raw.get("id") == order_id:
            return index
    return None


class OrderRepository:
    """
    Create, update, archive and fetch orders against a PersistentStore.

    Dependencies are injected and validated against their Protocols at
    construction time. Errors propagate to the caller unchanged; nothing is
    retried except revision conflicts in conditional mode.
    """

    def __init__(
        self,
        store: PersistentStore,
        catalog: ProductCatalog,
        write_mode: Union[WriteMode, str] = WriteMode.CONDITIONAL,
        max_write_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        """Initialize the repository.

        Args:
            store: Where both order collections live
            catalog: Product lookup used to price new orders
            write_mode: Conditional (compare-and-swap) or last-writer-wins
            max_write_attempts: Read-modify-write cycles tried per
                operation before a revision conflict becomes
                StoreUnavailableError. Only used in conditional mode.
            clock: Source of ``deleted_at`` timestamps
            id_factory: Source of new order ids
        """
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")

        self.store = ensure_persistent_store(store)
        self.catalog = ensure_product_catalog(catalog)
        self.write_mode = WriteMode(write_mode)
        self.max_write_attempts = max_write_attempts
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_order_id

        logger.debug(
            "Initializing OrderRepository",
            extra={
                "store_type": type(store).__name__,
                "write_mode": self.write_mode.value,
                "max_write_attempts": max_write_attempts,
            },
        )

    # Reading

    async def _read(self, key: str) -> Tuple[Records, int]:
        document = await self.store.read_collection(key)
        if document is None:
            return [], 0
        return document.records, document.revision

    @staticmethod
    def _parse(model_class: Type[R], raw: Dict[str, Any], key: str) -> R:
        try:
            return model_class.model_validate(raw)
        except ValidationError as e:
            logger.error(
                "Stored record failed validation",
                extra={
                    "collection_key": key,
                    "order_id": raw.get("id"),
                    "validation_errors": e.errors(),
                },
            )
            raise StoreUnavailableError(
                f"Collection {key} holds an unreadable record: {raw.get('id')}"
            ) from e

    async def fetch_all(self) -> List[OrderRecord]:
        """Return the active collection as it currently exists."""
        records, revision = await self._read(ACTIVE_ORDERS_KEY)
        logger.debug(
            "Fetched active orders",
            extra={"revision": revision, "record_count": len(records)},
        )
        return [
            self._parse(OrderRecord, raw, ACTIVE_ORDERS_KEY) for raw in records
        ]

    async def fetch_deleted(self) -> List[DeletedOrderRecord]:
        """Return the deleted collection as it currently exists."""
        records, revision = await self._read(DELETED_ORDERS_KEY)
        logger.debug(
            "Fetched deleted orders",
            extra={"revision": revision, "record_count": len(records)},
        )
        return [
            self._parse(DeletedOrderRecord, raw, DELETED_ORDERS_KEY)
            for raw in records
        ]

    async def get(self, order_id: str) -> Optional[OrderRecord]:
        """Retrieve one active order by id, or None."""
        records, _ = await self._read(ACTIVE_ORDERS_KEY)
        index = _find(records, order_id)
        if index is None:
            return None
        return self._parse(OrderRecord, records[index], ACTIVE_ORDERS_KEY)

    # Writing

    async def _read_modify_write(
        self,
        key: str,
        modify: Modification[T],
        operation: str,
        order_id: Optional[str] = None,
    ) -> T:
        attempts = (
            self.max_write_attempts
            if self.write_mode is WriteMode.CONDITIONAL
            else 1
        )
        for attempt in range(1, attempts + 1):
            records, revision = await self._read(key)
            new_records, result = await modify(list(records))
            if new_records is None:
                logger.debug(
                    "Nothing to write",
                    extra={"operation": operation, "order_id": order_id},
                )
                return result

            expected = (
                revision if self.write_mode is WriteMode.CONDITIONAL else None
            )
            try:
                new_revision = await self.store.write_collection(
                    key, new_records, expected_revision=expected
                )
            except RevisionConflictError as e:
                logger.warning(
                    "Collection changed since it was read, retrying",
                    extra={
                        "operation": operation,
                        "order_id": order_id,
                        "collection_key": key,
                        "attempt": attempt,
                        "expected_revision": e.expected,
                        "current_revision": e.actual,
                    },
                )
                continue

            logger.info(
                f"Order {operation} persisted",
                extra={
                    "operation": operation,
                    "order_id": order_id,
                    "collection_key": key,
                    "read_revision": revision,
                    "revision": new_revision,
                    "record_count": len(new_records),
                },
            )
            return result

        logger.error(
            "Giving up after repeated revision conflicts",
            extra={
                "operation": operation,
                "order_id": order_id,
                "collection_key": key,
                "attempts": attempts,
            },
        )
        raise StoreUnavailableError(
            f"Could not {operation} order {order_id or ''}: {key} kept "
            f"changing ({attempts} attempts)"
        )

    async def create(
        self, request: Union[CreateOrderRequest, Mapping[str, Any]]
    ) -> OrderRecord:
        """Validate, price and append a new order.

        Raises:
            OrderValidationError: Bad input or unknown product; the store
                is not touched
            StoreUnavailableError: The store read or write failed
        """
        request = parse_request(request, CreateOrderRequest)
        product = await self.catalog.get_product(request.product_id)
        if product is None:
            raise OrderValidationError(
                {"product_id": f"Unknown product: {request.product_id}"}
            )

        order = OrderRecord(
            id=self._id_factory(),
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            product_id=product.product_id,
            product_name=product.name,
            quantity=request.quantity,
            order_value=product.unit_price * request.quantity,
        )
        document = order.model_dump(mode="json")

        deleted, _ = await self._read(DELETED_ORDERS_KEY)
        if _find(deleted, order.id) is not None:
            raise StoreUnavailableError(
                f"Generated order id {order.id} is already archived"
            )

        async def append(
            records: Records,
        ) -> Tuple[Optional[Records], OrderRecord]:
            if _find(records, order.id) is not None:
                raise StoreUnavailableError(
                    f"Generated order id {order.id} is already in use"
                )
            return records + [document], order

        return await self._read_modify_write(
            ACTIVE_ORDERS_KEY, append, "create", order.id
        )

    async def _reprice(self, order: OrderRecord, quantity: int) -> Any:
        product = await self.catalog.get_product(order.product_id)
        if product is None:
            raise OrderValidationError(
                {
                    "quantity": (
                        f"Cannot reprice: product {order.product_id} is no "
                        "longer in the catalog"
                    )
                }
            )
        return product.unit_price * quantity

    async def update(
        self,
        order_id: str,
        patch: Union[OrderPatch, Mapping[str, Any]],
    ) -> OrderRecord:
        """Apply a patch to one active order.

        Raises:
            OrderValidationError: Bad or empty patch
            OrderNotFoundError: No active order has this id
            StoreUnavailableError: The store read or write failed
        """
        patch = parse_request(patch, OrderPatch)
        changes = patch.changes()
        if not changes:
            raise OrderValidationError(
                {"__root__": "Patch contains no changes"}
            )

        async def replace(
            records: Records,
        ) -> Tuple[Optional[Records], OrderRecord]:
            index = _find(records, order_id)
            if index is None:
                raise OrderNotFoundError(order_id)

            current = self._parse(
                OrderRecord, records[index], ACTIVE_ORDERS_KEY
            )
            values = current.model_dump()
            values.update(changes)
            if "quantity" in changes and "order_value" not in changes:
                values["order_value"] = await self._reprice(
                    current, changes["quantity"]
                )
            updated = OrderRecord.model_validate(values)
            if updated == current:
                return None, current

            records[index] = updated.model_dump(mode="json")
            return records, updated

        return await self._read_modify_write(
            ACTIVE_ORDERS_KEY, replace, "update", order_id
        )

    async def _remove_from_active(
        self, order_id: str, archived: OrderRecord
    ) -> None:
        async def remove(records: Records) -> Tuple[Optional[Records], None]:
            index = _find(records, order_id)
            if index is None:
                return None, None
            current = self._parse(OrderRecord, records[index], ACTIVE_ORDERS_KEY)
            if current != archived:
                logger.warning(
                    "Order changed after it was archived, archived copy "
                    "keeps the earlier fields",
                    extra={
                        "order_id": order_id,
                        "archived": archived.model_dump(mode="json"),
                        "active": current.model_dump(mode="json"),
                    },
                )
            return [raw for raw in records if raw.get("id") != order_id], None

        await self._read_modify_write(
            ACTIVE_ORDERS_KEY, remove, "archive", order_id
        )

    async def archive(self, order_id: str) -> DeletedOrderRecord:
        """Move an order from the active to the deleted collection.

        Safe to call again after PartialArchiveError: when the order is
        already in the deleted collection the append is skipped.

        Raises:
            OrderNotFoundError: The id is in neither collection
            StoreUnavailableError: Phase (a) failed; nothing changed
            PartialArchiveError: Phase (a) succeeded, phase (b) failed
        """
        active, _ = await self._read(ACTIVE_ORDERS_KEY)
        deleted, _ = await self._read(DELETED_ORDERS_KEY)
        active_index = _find(active, order_id)
        deleted_index = _find(deleted, order_id)

        if active_index is None:
            if deleted_index is not None:
                logger.info(
                    "Order already archived",
                    extra={"order_id": order_id},
                )
                return self._parse(
                    DeletedOrderRecord,
                    deleted[deleted_index],
                    DELETED_ORDERS_KEY,
                )
            raise OrderNotFoundError(order_id)

        if deleted_index is None:
            order = self._parse(
                OrderRecord, active[active_index], ACTIVE_ORDERS_KEY
            )
            archived = DeletedOrderRecord.from_order(
                order, deleted_at=self._clock()
            )
            await self.store.append_to_collection(
                DELETED_ORDERS_KEY, archived.model_dump(mode="json")
            )
            logger.debug(
                "Archive phase one complete",
                extra={"order_id": order_id},
            )
        else:
            archived = self._parse(
                DeletedOrderRecord, deleted[deleted_index], DELETED_ORDERS_KEY
            )
            logger.warning(
                "Resuming interrupted archive",
                extra={"order_id": order_id},
            )

        try:
            await self._remove_from_active(order_id, archived.to_order())
        except StoreUnavailableError as e:
            logger.error(
                "Order archived but still active",
                extra={"order_id": order_id, "error": str(e)},
            )
            raise PartialArchiveError(order_id, archived) from e

        return archived

    async def repair_partial_archives(self) -> List[str]:
        """Remove from the active collection every id that is already
        archived.

        This is the manual reconciliation for archives interrupted between
        their two phases. Returns the ids that were removed.
        """
        deleted, _ = await self._read(DELETED_ORDERS_KEY)
        archived_ids = {raw.get("id") for raw in deleted}

        async def remove(
            records: Records,
        ) -> Tuple[Optional[Records], List[str]]:
            repaired = [
                raw["id"] for raw in records if raw.get("id") in archived_ids
            ]
            if not repaired:
                return None, []
            kept = [raw for raw in records if raw.get("id") not in archived_ids]
            return kept, repaired

        repaired = await self._read_modify_write(
            ACTIVE_ORDERS_KEY, remove, "repair"
        )
        if repaired:
            logger.warning(
                "Removed archived orders left in the active collection",
                extra={"order_ids": repaired},
            )
        return repaired
