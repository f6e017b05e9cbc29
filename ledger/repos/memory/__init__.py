"""
In-memory implementations for tests and single-process use.
"""

from .catalog import MemoryProductCatalog, DEFAULT_PRODUCTS
from .store import MemoryPersistentStore

__all__ = [
    "DEFAULT_PRODUCTS",
    "MemoryPersistentStore",
    "MemoryProductCatalog",
]
