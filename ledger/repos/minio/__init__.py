"""
MinIO-backed implementations.
"""

from .client import MinioClient, create_minio_client
from .store import MinioPersistentStore

__all__ = [
    "MinioClient",
    "MinioPersistentStore",
    "create_minio_client",
]
