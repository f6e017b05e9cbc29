"""
Tests for the OrderLedger facade: commands, optimistic updates and
listings served from the projection.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ledger.domain import ACTIVE_ORDERS_KEY, DELETED_ORDERS_KEY
from ledger.exceptions import OrderValidationError, StoreUnavailableError
from ledger.order_repository import OrderRepository
from ledger.repos.memory import MemoryPersistentStore, MemoryProductCatalog
from ledger.service import DELETED_PAGE_SIZE, ORDERS_PAGE_SIZE, OrderLedger
from ledger.tests.factories import (
    DeletedOrderRecordFactory,
    OrderRecordFactory,
    as_documents,
)
from ledger.tests.stores import FlakyStore


def order_request(name: str, product_id: str = "1", quantity: int = 1) -> dict:
    return {
        "customer_name": name,
        "customer_email": f"{name.lower()}@example.com",
        "product_id": product_id,
        "quantity": quantity,
    }


@pytest.fixture
def ledger(repository: OrderRepository) -> OrderLedger:
    return OrderLedger(repository)


def test_default_page_sizes(ledger: OrderLedger) -> None:
    assert ORDERS_PAGE_SIZE == 15
    assert DELETED_PAGE_SIZE == 20
    assert ledger.page_size == 15
    assert ledger.deleted_page_size == 20


class TestCommands:
    @pytest.mark.asyncio
    async def test_create_shows_up_without_refresh(
        self, ledger: OrderLedger
    ) -> None:
        order = await ledger.create(order_request("Alice", quantity=2))

        page = ledger.orders_page()
        assert [o.id for o in page.items] == [order.id]
        assert page.total_value == Decimal("20")

    @pytest.mark.asyncio
    async def test_update_shows_up_without_refresh(
        self, ledger: OrderLedger
    ) -> None:
        order = await ledger.create(order_request("Alice"))
        await ledger.update(order.id, {"quantity": 3})

        assert ledger.snapshot().active[0].order_value == Decimal("30")

    @pytest.mark.asyncio
    async def test_archive_moves_order_in_projection(
        self, ledger: OrderLedger
    ) -> None:
        order = await ledger.create(order_request("Alice"))
        await ledger.archive(order.id)

        assert ledger.orders_page().items == []
        assert [o.id for o in ledger.deleted_page().items] == [order.id]

    @pytest.mark.asyncio
    async def test_rejected_command_leaves_projection_alone(
        self, ledger: OrderLedger
    ) -> None:
        with pytest.raises(OrderValidationError):
            await ledger.create(order_request("Alice", product_id="999"))
        assert ledger.snapshot().revision == 0

    @pytest.mark.asyncio
    async def test_failed_write_leaves_projection_alone(
        self, store: MemoryPersistentStore, catalog: MemoryProductCatalog
    ) -> None:
        flaky = FlakyStore(store)
        ledger = OrderLedger(OrderRepository(flaky, catalog))
        flaky.fail_writes = 1

        with pytest.raises(StoreUnavailableError):
            await ledger.create(order_request("Alice"))

        assert ledger.snapshot().active == ()

    @pytest.mark.asyncio
    async def test_refresh_replaces_optimistic_state(
        self, store: MemoryPersistentStore, catalog: MemoryProductCatalog
    ) -> None:
        mine = OrderLedger(OrderRepository(store, catalog))
        theirs = OrderRepository(store, catalog)
        order = await mine.create(order_request("Alice"))
        await theirs.archive(order.id)
        await theirs.create(order_request("Bob"))

        assert await mine.refresh() is True

        assert [o.customer_name for o in mine.orders_page().items] == ["Bob"]
        assert [o.id for o in mine.deleted_page().items] == [order.id]


class TestListings:
    @pytest.fixture
    def many_orders(self, catalog: MemoryProductCatalog) -> OrderLedger:
        orders = [
            OrderRecordFactory(
                id=f"order-{n:02d}",
                customer_name="Alice" if n % 2 else "Bob",
                customer_email=(
                    f"alice{n}@example.com" if n % 2 else f"bob{n}@example.com"
                ),
            )
            for n in range(32)
        ]
        store = MemoryPersistentStore({ACTIVE_ORDERS_KEY: as_documents(*orders)})
        return OrderLedger(OrderRepository(store, catalog))

    @pytest.mark.asyncio
    async def test_pages_of_fifteen(self, many_orders: OrderLedger) -> None:
        await many_orders.refresh()

        pages = [many_orders.orders_page(page=n) for n in (1, 2, 3)]

        assert [len(p.items) for p in pages] == [15, 15, 2]
        assert all(p.total_pages == 3 for p in pages)
        assert all(p.total_count == 32 for p in pages)
        assert all(p.total_value == Decimal("320") for p in pages)

    @pytest.mark.asyncio
    async def test_out_of_range_page_is_clamped(
        self, many_orders: OrderLedger
    ) -> None:
        await many_orders.refresh()

        assert many_orders.orders_page(page=99).page == 3
        assert many_orders.orders_page(page=0).page == 1

    @pytest.mark.asyncio
    async def test_search_filters_before_paging(
        self, many_orders: OrderLedger
    ) -> None:
        await many_orders.refresh()

        page = many_orders.orders_page(search="ALICE")

        assert page.total_count == 16
        assert page.total_pages == 2
        assert page.total_value == Decimal("160")
        assert all(o.customer_name == "Alice" for o in page.items)

    def test_empty_listing(self, ledger: OrderLedger) -> None:
        page = ledger.orders_page(search="nobody", page=4)
        assert page.items == []
        assert page.page == 1
        assert page.total_pages == 0
        assert page.total_value == Decimal("0")

    @pytest.mark.asyncio
    async def test_deleted_newest_first_in_pages_of_twenty(
        self, catalog: MemoryProductCatalog
    ) -> None:
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        deleted = [
            DeletedOrderRecordFactory(
                id=f"gone-{n:02d}", deleted_at=base + timedelta(hours=n)
            )
            for n in range(25)
        ]
        store = MemoryPersistentStore(
            {DELETED_ORDERS_KEY: as_documents(*deleted)}
        )
        ledger = OrderLedger(OrderRepository(store, catalog))
        await ledger.refresh()

        first = ledger.deleted_page()
        second = ledger.deleted_page(page=2)

        assert len(first.items) == 20
        assert first.items[0].id == "gone-24"
        assert [o.id for o in second.items] == [
            f"gone-{n:02d}" for n in range(4, -1, -1)
        ]


class TestBackgroundRefresh:
    @pytest.mark.asyncio
    async def test_context_manager_runs_reconciler(
        self, repository: OrderRepository
    ) -> None:
        ledger = OrderLedger(repository, refresh_interval=60)

        async with ledger:
            assert ledger.reconciler.running

        assert not ledger.reconciler.running
