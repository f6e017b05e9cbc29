"""
Error taxonomy for the order ledger.

OrderRepository propagates every one of these to its caller unchanged.
Only the Reconciler swallows StoreUnavailableError, keeping the stale
projection until its next tick.
"""

from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ledger.domain import DeletedOrderRecord


class LedgerError(Exception):
    """Base class for all order ledger errors."""


class OrderValidationError(LedgerError):
    """Input rejected before any store access.

    ``errors`` maps field names to a human readable message, the shape an
    order form renders next to each input.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(
            f"{field}: {message}" for field, message in self.errors.items()
        )
        super().__init__(f"Invalid order input: {details}")


class OrderNotFoundError(LedgerError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class StoreUnavailableError(LedgerError):
    """The persistent store could not complete a read or write."""


class PartialArchiveError(StoreUnavailableError):
    """Archive phase one (append to deleted) succeeded, phase two failed.

    The order now exists in both collections. Calling archive() again with
    the same id only re-runs the removal from the active collection.
    """

    def __init__(
        self,
        order_id: str,
        archived_record: Optional["DeletedOrderRecord"] = None,
    ):
        self.order_id = order_id
        self.archived_record = archived_record
        super().__init__(
            f"Order {order_id} was archived but is still in the active "
            "collection; retry archive to finish"
        )


class RevisionConflictError(LedgerError):
    """A conditional write found a different revision than expected."""

    def __init__(self, key: str, expected: int, actual: int):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Revision conflict on {key}: expected {expected}, found {actual}"
        )
