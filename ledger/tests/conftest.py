import pytest

from ledger.order_repository import OrderRepository
from ledger.projection import ProjectionCache
from ledger.repos.memory import MemoryPersistentStore, MemoryProductCatalog
from ledger.tests.factories import TEST_PRODUCTS


@pytest.fixture
def catalog() -> MemoryProductCatalog:
    """Catalog with Widget ($10), Gadget ($5) and Gizmo ($2.50)."""
    return MemoryProductCatalog(TEST_PRODUCTS)


@pytest.fixture
def store() -> MemoryPersistentStore:
    return MemoryPersistentStore()


@pytest.fixture
def repository(
    store: MemoryPersistentStore, catalog: MemoryProductCatalog
) -> OrderRepository:
    return OrderRepository(store, catalog)


@pytest.fixture
def cache() -> ProjectionCache:
    return ProjectionCache()
