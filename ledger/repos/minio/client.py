"""
The slice of the minio.Minio API that MinioPersistentStore calls.

MinioPersistentStore takes any object with these four methods, so the
test suite runs it against an in-memory client instead of a server.
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from minio import Minio  # type: ignore[import-untyped]
from urllib3.response import HTTPResponse

logger = logging.getLogger(__name__)


@runtime_checkable
class MinioClient(Protocol):
    """Bucket check, bucket creation and whole-object put/get."""

    def bucket_exists(self, bucket_name: str) -> bool:
        """Check if a bucket exists."""
        ...

    def make_bucket(self, bucket_name: str) -> None:
        """Create ``bucket_name``.

        Raises:
            S3Error: The server refused to create it
        """
        ...

    def put_object(
        self,
        bucket_name: str,
        object_name: str,
        data: Any,
        length: int,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Upload ``length`` bytes read from ``data``.

        Raises:
            S3Error: The upload was rejected
        """
        ...

    def get_object(self, bucket_name: str, object_name: str) -> HTTPResponse:
        """Open an object for reading. Callers close and release it.

        Raises:
            S3Error: NoSuchKey when the object is absent, other codes for
                server-side failures
        """
        ...


def create_minio_client(
    endpoint: str,
    access_key: str,
    secret_key: str,
    secure: bool = False,
) -> MinioClient:
    """Build a real Minio client for the given endpoint."""
    logger.debug(
        "Creating new Minio client instance",
        extra={"endpoint": endpoint, "secure": secure},
    )
    return Minio(
        endpoint,
        access_key=access_key,
        secret_key=secret_key,
        secure=secure,
    )
