"""
OrderLedger: the client-process facade the order screens talk to.

Commands go through OrderRepository first. Only after the store accepted
them is the matching optimistic change applied to the ProjectionCache.
Listings are computed from the cached snapshot with the query functions
and never hit the store.
"""

import logging
from typing import Any, Mapping, Optional, Union

from ledger import query
from ledger.domain import (
    CreateOrderRequest,
    DeletedOrderRecord,
    OrderPage,
    OrderPatch,
    OrderRecord,
)
from ledger.order_repository import OrderRepository
from ledger.projection import (
    ProjectionCache,
    ProjectionSnapshot,
    optimistic_archive,
    optimistic_create,
    optimistic_update,
)
from ledger.reconciler import DEFAULT_REFRESH_INTERVAL, Reconciler

logger = logging.getLogger(__name__)

ORDERS_PAGE_SIZE = 15
DELETED_PAGE_SIZE = 20


class OrderLedger:
    """Wires an OrderRepository, a ProjectionCache and a Reconciler.

    ``async with ledger:`` runs the background refresh for the duration of
    the block.
    """

    def __init__(
        self,
        repository: OrderRepository,
        cache: Optional[ProjectionCache] = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        page_size: int = ORDERS_PAGE_SIZE,
        deleted_page_size: int = DELETED_PAGE_SIZE,
    ) -> None:
        self.repository = repository
        self.cache = cache or ProjectionCache()
        self.reconciler = Reconciler(
            repository, self.cache, interval=refresh_interval
        )
        self.page_size = page_size
        self.deleted_page_size = deleted_page_size

    async def __aenter__(self) -> "OrderLedger":
        self.reconciler.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.reconciler.stop()

    def snapshot(self) -> ProjectionSnapshot:
        return self.cache.snapshot()

    async def refresh(self) -> bool:
        return await self.reconciler.refresh_now()

    async def create(
        self, request: Union[CreateOrderRequest, Mapping[str, Any]]
    ) -> OrderRecord:
        order = await self.repository.create(request)
        self.cache.apply_local_optimistic(optimistic_create(order))
        return order

    async def update(
        self, order_id: str, patch: Union[OrderPatch, Mapping[str, Any]]
    ) -> OrderRecord:
        order = await self.repository.update(order_id, patch)
        self.cache.apply_local_optimistic(optimistic_update(order))
        return order

    async def archive(self, order_id: str) -> DeletedOrderRecord:
        archived = await self.repository.archive(order_id)
        self.cache.apply_local_optimistic(optimistic_archive(archived))
        return archived

    def orders_page(self, search: str = "", page: int = 1) -> OrderPage:
        """Filtered, paginated active orders.

        ``total_value`` covers every order matching the search, not only
        the returned page.
        """
        matching = query.search(self.cache.snapshot().active, search)
        return self._page(matching, page, self.page_size)

    def deleted_page(self, page: int = 1) -> OrderPage:
        """Archived orders, most recently deleted first."""
        ordered = query.newest_first(self.cache.snapshot().deleted)
        return self._page(ordered, page, self.deleted_page_size)

    @staticmethod
    def _page(items: list, page: int, page_size: int) -> OrderPage:
        pages = query.total_pages(len(items), page_size)
        page = query.clamp_page(page, pages)
        return OrderPage(
            items=query.paginate(items, page, page_size),
            page=page,
            page_size=page_size,
            total_pages=pages,
            total_count=len(items),
            total_value=query.total_value(items),
        )
