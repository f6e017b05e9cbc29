"""
Repository interfaces defined as Protocols.

Two collaborators sit behind these interfaces:

- **PersistentStore**: a remote key-document store holding the whole
  "active-orders" and "deleted-orders" arrays. It offers whole-document
  reads and writes plus a single-element append. There are no
  transactions across documents and no row-level locking.

- **ProductCatalog**: a static, read-only table of products keyed by
  product id, loaded once when the process starts.

Architectural Notes:

- These are pure interfaces with no implementation details
- OrderRepository is the only component allowed to call the write
  methods of PersistentStore
- Implementations translate every backend failure into
  StoreUnavailableError so callers never see framework-specific errors
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ledger.domain import Product, VersionedCollection


@runtime_checkable
class PersistentStore(Protocol):
    """Whole-document storage for the order collections.

    Writes are last-writer-wins unless the caller passes
    ``expected_revision``, which turns the write into a compare-and-swap
    against the revision the caller read.
    """

    async def read_collection(
        self, key: str
    ) -> Optional[VersionedCollection]:
        """Read a whole collection document.

        Args:
            key: Collection key, e.g. "active-orders"

        Returns:
            The records with their revision, or None if the document
            does not exist

        Raises:
            StoreUnavailableError: If the backend read failed
        """
        ...

    async def write_collection(
        self,
        key: str,
        records: List[Dict[str, Any]],
        expected_revision: Optional[int] = None,
    ) -> int:
        """Replace a whole collection document.

        Args:
            key: Collection key
            records: The complete new content of the collection
            expected_revision: None for an unconditional write. Otherwise
                the write only succeeds when the stored revision equals
                this value (0 meaning the document must not exist yet)

        Returns:
            The revision of the document after the write

        Raises:
            RevisionConflictError: If expected_revision did not match
            StoreUnavailableError: If the backend write failed
        """
        ...

    async def append_to_collection(
        self, key: str, record: Dict[str, Any]
    ) -> int:
        """Atomically append one record, creating the document if needed.

        Returns:
            The revision of the document after the append

        Raises:
            StoreUnavailableError: If the backend write failed
        """
        ...


@runtime_checkable
class ProductCatalog(Protocol):
    """Read-only lookup of products by id."""

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Retrieve a product by its ID.

        Returns:
            The Product if it is in the catalog, None otherwise
        """
        ...

    async def list_products(self) -> List[Product]:
        """List every product in catalog order."""
        ...
