"""
Memory implementation of PersistentStore.

This module provides an in-memory implementation of the PersistentStore
protocol. Documents live in a dictionary keyed by collection key, each with
a revision counter, so conditional writes behave exactly as they do against
a remote backend.

Records are deep-copied on the way in and out. Two OrderRepository
instances sharing one MemoryPersistentStore therefore behave like two
client processes sharing one remote document: neither can see the other's
work except through the store. All operations are still async to maintain
interface compatibility.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from ledger.domain import VersionedCollection
from ledger.exceptions import RevisionConflictError
from ledger.repositories import PersistentStore

logger = logging.getLogger(__name__)


class MemoryPersistentStore(PersistentStore):
    """
    Memory implementation of PersistentStore using Python dictionaries.
    """

    def __init__(
        self, documents: Optional[Dict[str, List[Dict[str, Any]]]] = None
    ) -> None:
        """Initialize the store, optionally seeded with documents.

        Args:
            documents: Initial collections keyed by collection key. Each
                seeded document starts at revision 1.
        """
        logger.debug("Initializing MemoryPersistentStore")
        self._documents: Dict[str, VersionedCollection] = {}
        for key, records in (documents or {}).items():
            self._documents[key] = VersionedCollection(
                records=copy.deepcopy(records), revision=1
            )

    def _current_revision(self, key: str) -> int:
        document = self._documents.get(key)
        return document.revision if document is not None else 0

    async def read_collection(
        self, key: str
    ) -> Optional[VersionedCollection]:
        document = self._documents.get(key)
        if document is None:
            logger.debug(
                "MemoryPersistentStore: Collection not found",
                extra={"collection_key": key},
            )
            return None
        return document.model_copy(deep=True)

    async def write_collection(
        self,
        key: str,
        records: List[Dict[str, Any]],
        expected_revision: Optional[int] = None,
    ) -> int:
        current = self._current_revision(key)
        if expected_revision is not None and expected_revision != current:
            logger.debug(
                "MemoryPersistentStore: Conditional write rejected",
                extra={
                    "collection_key": key,
                    "expected_revision": expected_revision,
                    "current_revision": current,
                },
            )
            raise RevisionConflictError(key, expected_revision, current)

        revision = current + 1
        self._documents[key] = VersionedCollection(
            records=copy.deepcopy(records), revision=revision
        )
        logger.debug(
            "MemoryPersistentStore: Collection written",
            extra={
                "collection_key": key,
                "revision": revision,
                "record_count": len(records),
            },
        )
        return revision

    async def append_to_collection(
        self, key: str, record: Dict[str, Any]
    ) -> int:
        document = self._documents.get(key)
        records = list(document.records) if document is not None else []
        records.append(copy.deepcopy(record))
        revision = self._current_revision(key) + 1
        self._documents[key] = VersionedCollection(
            records=records, revision=revision
        )
        logger.debug(
            "MemoryPersistentStore: Record appended",
            extra={"collection_key": key, "revision": revision},
        )
        return revision
