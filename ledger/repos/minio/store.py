"""
Minio implementation of PersistentStore.

Each collection is a single JSON object named ``<key>.json`` in one bucket::

    {"revision": 7, "records": [{...}, {...}]}

The revision lives inside the document body, so a read returns records and
revision together. A conditional write re-reads the stored revision
immediately before ``put_object``. S3 ``put_object`` takes no
precondition here, so two writers that pass the check at the same instant
can still both land; the window is the time between that read and the
upload rather than a whole read-modify-write cycle.
"""

import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from minio.error import S3Error  # type: ignore[import-untyped]
from pydantic import ValidationError
from urllib3.exceptions import HTTPError

from ledger.domain import VersionedCollection
from ledger.exceptions import RevisionConflictError, StoreUnavailableError
from ledger.repositories import PersistentStore
from .client import MinioClient

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_NAME = "order-ledger"
APPEND_ATTEMPTS = 5


class MinioPersistentStore(PersistentStore):
    """
    Minio implementation of PersistentStore.
    Uses one JSON object per collection key.
    """

    def __init__(
        self,
        client: MinioClient,
        bucket_name: str = DEFAULT_BUCKET_NAME,
        append_attempts: int = APPEND_ATTEMPTS,
    ) -> None:
        """Initialize store with Minio client.

        Args:
            client: MinioClient protocol implementation (real or fake)
            bucket_name: Bucket holding the collection documents
            append_attempts: Compare-and-swap attempts per append before
                giving up with StoreUnavailableError
        """
        self.client = client
        self.bucket_name = bucket_name
        self.append_attempts = append_attempts
        self._bucket_checked = False
        logger.debug(
            "Initializing MinioPersistentStore",
            extra={"bucket_name": bucket_name},
        )

    def _ensure_bucket_exists(self) -> None:
        if self._bucket_checked:
            return
        try:
            if not self.client.bucket_exists(self.bucket_name):
                logger.info(
                    "Creating order ledger bucket",
                    extra={"bucket_name": self.bucket_name},
                )
                self.client.make_bucket(self.bucket_name)
            else:
                logger.debug(
                    "Order ledger bucket already exists",
                    extra={"bucket_name": self.bucket_name},
                )
        except (S3Error, HTTPError) as e:
            logger.error(
                "Failed to create order ledger bucket",
                extra={"bucket_name": self.bucket_name, "error": str(e)},
            )
            raise StoreUnavailableError(
                f"Cannot access bucket {self.bucket_name}: {e}"
            ) from e
        self._bucket_checked = True

    @staticmethod
    def _object_name(key: str) -> str:
        return f"{key}.json"

    async def read_collection(
        self, key: str
    ) -> Optional[VersionedCollection]:
        self._ensure_bucket_exists()
        object_name = self._object_name(key)
        logger.debug(
            "MinioPersistentStore: Attempting to read collection",
            extra={"collection_key": key, "object_name": object_name},
        )
        try:
            response = self.client.get_object(
                bucket_name=self.bucket_name, object_name=object_name
            )
            try:
                data = response.read()
            finally:
                response.close()
                response.release_conn()
        except S3Error as e:
            if getattr(e, "code", None) == "NoSuchKey":
                logger.debug(
                    "MinioPersistentStore: Collection not found (NoSuchKey)",
                    extra={"collection_key": key},
                )
                return None
            logger.error(
                "MinioPersistentStore: Error reading collection",
                extra={
                    "collection_key": key,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise StoreUnavailableError(
                f"Failed to read collection {key}: {e}"
            ) from e
        except HTTPError as e:
            logger.error(
                "MinioPersistentStore: Transport error reading collection",
                extra={"collection_key": key, "error": str(e)},
                exc_info=True,
            )
            raise StoreUnavailableError(
                f"Failed to read collection {key}: {e}"
            ) from e

        try:
            document = VersionedCollection.model_validate_json(data)
        except ValidationError as e:
            logger.error(
                "MinioPersistentStore: Collection document is corrupt",
                extra={"collection_key": key, "payload_size_bytes": len(data)},
            )
            raise StoreUnavailableError(
                f"Collection {key} holds an unreadable document"
            ) from e

        logger.debug(
            "MinioPersistentStore: Collection read",
            extra={
                "collection_key": key,
                "revision": document.revision,
                "record_count": len(document.records),
            },
        )
        return document

    def _put(self, key: str, document: VersionedCollection) -> None:
        payload = json.dumps(
            {"revision": document.revision, "records": document.records}
        ).encode("utf-8")
        try:
            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=self._object_name(key),
                data=io.BytesIO(payload),
                length=len(payload),
                content_type="application/json",
                metadata={
                    "revision": str(document.revision),
                    "saved_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        except (S3Error, HTTPError) as e:
            logger.error(
                "MinioPersistentStore: Failed to write collection",
                extra={
                    "collection_key": key,
                    "revision": document.revision,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise StoreUnavailableError(
                f"Failed to write collection {key}: {e}"
            ) from e

        logger.info(
            "MinioPersistentStore: Collection persisted",
            extra={
                "collection_key": key,
                "revision": document.revision,
                "record_count": len(document.records),
                "payload_size_bytes": len(payload),
            },
        )

    async def write_collection(
        self,
        key: str,
        records: List[Dict[str, Any]],
        expected_revision: Optional[int] = None,
    ) -> int:
        current = await self.read_collection(key)
        current_revision = current.revision if current is not None else 0
        if expected_revision is not None and expected_revision != current_revision:
            logger.debug(
                "MinioPersistentStore: Conditional write rejected",
                extra={
                    "collection_key": key,
                    "expected_revision": expected_revision,
                    "current_revision": current_revision,
                },
            )
            raise RevisionConflictError(
                key, expected_revision, current_revision
            )

        document = VersionedCollection(
            records=list(records), revision=current_revision + 1
        )
        self._put(key, document)
        return document.revision

    async def append_to_collection(
        self, key: str, record: Dict[str, Any]
    ) -> int:
        for attempt in range(1, self.append_attempts + 1):
            current = await self.read_collection(key)
            records = list(current.records) if current is not None else []
            records.append(record)
            try:
                return await self.write_collection(
                    key,
                    records,
                    expected_revision=(
                        current.revision if current is not None else 0
                    ),
                )
            except RevisionConflictError:
                logger.warning(
                    "MinioPersistentStore: Append raced another writer, "
                    "retrying",
                    extra={"collection_key": key, "attempt": attempt},
                )

        raise StoreUnavailableError(
            f"Could not append to {key} after {self.append_attempts} attempts"
        )
