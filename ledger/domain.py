"""
Domain models defined as Pydantic models.
These are pure data structures with validation.
"""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ACTIVE_ORDERS_KEY = "active-orders"
DELETED_ORDERS_KEY = "deleted-orders"


class WriteMode(str, Enum):
    """How OrderRepository writes whole collections back to the store."""

    # compare-and-swap on the revision read, re-running the cycle on conflict
    CONDITIONAL = "conditional"
    # unconditional replace; a concurrent writer's change can be lost
    LAST_WRITER_WINS = "last_writer_wins"


def _require_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name is required")
    return v


def _require_email(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Email is required")
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v


def _require_positive_quantity(v: int) -> int:
    if v <= 0:
        raise ValueError("Quantity must be a positive number")
    return v


def _require_non_negative_value(v: Decimal) -> Decimal:
    if v < 0:
        raise ValueError("Order value must not be negative")
    return v


class Product(BaseModel):
    """Catalog entry. Orders keep a snapshot of its name and price."""

    product_id: str
    name: str
    unit_price: Decimal

    @field_validator("unit_price")
    @classmethod
    def unit_price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit price must not be negative")
        return v


class OrderRecord(BaseModel):
    id: str
    customer_name: str
    customer_email: str
    product_id: str
    product_name: str
    quantity: int
    order_value: Decimal

    @field_validator("customer_name")
    @classmethod
    def customer_name_must_not_be_empty(cls, v: str) -> str:
        return _require_name(v)

    @field_validator("customer_email")
    @classmethod
    def customer_email_must_be_well_formed(cls, v: str) -> str:
        return _require_email(v)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        return _require_positive_quantity(v)

    @field_validator("order_value")
    @classmethod
    def order_value_must_not_be_negative(cls, v: Decimal) -> Decimal:
        return _require_non_negative_value(v)


class DeletedOrderRecord(OrderRecord):
    """An archived order. Append-only, never mutated or restored."""

    deleted_at: datetime

    @classmethod
    def from_order(
        cls, order: OrderRecord, deleted_at: datetime
    ) -> "DeletedOrderRecord":
        return cls(**order.model_dump(), deleted_at=deleted_at)

    def to_order(self) -> OrderRecord:
        return OrderRecord(**self.model_dump(exclude={"deleted_at"}))


class CreateOrderRequest(BaseModel):
    """Request model for creating an order."""

    customer_name: str
    customer_email: str
    product_id: str
    quantity: int

    @field_validator("customer_name")
    @classmethod
    def customer_name_must_not_be_empty(cls, v: str) -> str:
        return _require_name(v)

    @field_validator("customer_email")
    @classmethod
    def customer_email_must_be_well_formed(cls, v: str) -> str:
        return _require_email(v)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        return _require_positive_quantity(v)


class OrderPatch(BaseModel):
    """Partial update of an order.

    Only fields that were explicitly set are applied. An explicit
    order_value always wins; otherwise a patched quantity recomputes the
    value from the product's unit price, and any other edit leaves the
    stored value alone.
    """

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    product_name: Optional[str] = None
    quantity: Optional[int] = None
    order_value: Optional[Decimal] = None

    @field_validator("customer_name", "product_name")
    @classmethod
    def names_must_not_be_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _require_name(v)

    @field_validator("customer_email")
    @classmethod
    def customer_email_must_be_well_formed(
        cls, v: Optional[str]
    ) -> Optional[str]:
        if v is None:
            return v
        return _require_email(v)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        return _require_positive_quantity(v)

    @field_validator("order_value")
    @classmethod
    def order_value_must_not_be_negative(
        cls, v: Optional[Decimal]
    ) -> Optional[Decimal]:
        if v is None:
            return v
        return _require_non_negative_value(v)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually set, excluding explicit None."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class VersionedCollection(BaseModel):
    """A whole collection document as the persistent store holds it.

    Revision 0 means the document has never been written.
    """

    records: List[Dict[str, Any]] = Field(default_factory=list)
    revision: int = 0

    @field_validator("revision")
    @classmethod
    def revision_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Revision must not be negative")
        return v


class OrderPage(BaseModel):
    """One page of a filtered order listing plus its aggregates."""

    items: List[OrderRecord]
    page: int
    page_size: int
    total_pages: int
    total_count: int
    total_value: Decimal
