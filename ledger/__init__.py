"""
Order ledger consistency layer.

Keeps a mutable collection of orders, persisted as whole-array documents
in a shared store, consistent across independently polling clients, and
serves search and pagination from a client-local projection.
"""

from .domain import (
    CreateOrderRequest,
    DeletedOrderRecord,
    OrderPage,
    OrderPatch,
    OrderRecord,
    Product,
    VersionedCollection,
    WriteMode,
)
from .exceptions import (
    LedgerError,
    OrderNotFoundError,
    OrderValidationError,
    PartialArchiveError,
    RevisionConflictError,
    StoreUnavailableError,
)
from .order_repository import OrderRepository
from .projection import ProjectionCache, ProjectionSnapshot
from .reconciler import Reconciler
from .repositories import PersistentStore, ProductCatalog
from .service import OrderLedger

__all__ = [
    # Domain models
    "CreateOrderRequest",
    "DeletedOrderRecord",
    "OrderPage",
    "OrderPatch",
    "OrderRecord",
    "Product",
    "VersionedCollection",
    "WriteMode",
    # Errors
    "LedgerError",
    "OrderNotFoundError",
    "OrderValidationError",
    "PartialArchiveError",
    "RevisionConflictError",
    "StoreUnavailableError",
    # Repository protocols
    "PersistentStore",
    "ProductCatalog",
    # Core components
    "OrderRepository",
    "ProjectionCache",
    "ProjectionSnapshot",
    "Reconciler",
    "OrderLedger",
]
