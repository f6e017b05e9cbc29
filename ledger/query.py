"""
Pure functions over a projection snapshot: search, paginate, aggregate.

Nothing here mutates its input or touches the store.
"""

import math
from decimal import Decimal
from typing import Iterable, List, Sequence, TypeVar

from ledger.domain import DeletedOrderRecord, OrderRecord

O = TypeVar("O", bound=OrderRecord)
T = TypeVar("T")


def matches(order: OrderRecord, query: str) -> bool:
    """Case-insensitive substring match on name, email, product or id."""
    needle = query.lower()
    return any(
        needle in field.lower()
        for field in (
            order.customer_name,
            order.customer_email,
            order.product_name,
            order.id,
        )
    )


def search(items: Iterable[O], query: str) -> List[O]:
    """Orders matching ``query`` in their original order.

    The empty query matches everything.
    """
    if not query:
        return list(items)
    return [order for order in items if matches(order, query)]


def paginate(items: Sequence[T], page: int, page_size: int) -> List[T]:
    """Return 1-indexed ``page`` of ``items``.

    Out-of-range pages give an empty list; clamping is the caller's job
    (see clamp_page).
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    if page < 1:
        return []
    start = (page - 1) * page_size
    return list(items[start : start + page_size])


def total_value(items: Iterable[OrderRecord]) -> Decimal:
    return sum((order.order_value for order in items), Decimal("0"))


def total_pages(count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    return math.ceil(count / page_size)


def clamp_page(page: int, pages: int) -> int:
    # An empty listing still shows page 1.
    return max(1, min(page, pages))


def newest_first(
    deleted: Iterable[DeletedOrderRecord],
) -> List[DeletedOrderRecord]:
    return sorted(deleted, key=lambda order: order.deleted_at, reverse=True)
