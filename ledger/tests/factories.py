"""
Test factories for order ledger domain objects using factory_boy.

This module provides factory_boy factories for creating test instances of
the ledger's records with sensible defaults, plus the small product table
the tests price orders against.
"""

from datetime import datetime, timezone
from decimal import Decimal

from factory import LazyAttribute
from factory.base import Factory
from factory.declarations import LazyFunction, Sequence
from factory.faker import Faker

from ledger.domain import DeletedOrderRecord, OrderRecord, Product

TEST_PRODUCTS = (
    Product(product_id="1", name="Widget", unit_price=Decimal("10")),
    Product(product_id="2", name="Gadget", unit_price=Decimal("5")),
    Product(product_id="3", name="Gizmo", unit_price=Decimal("2.50")),
)


class ProductFactory(Factory):
    class Meta:
        model = Product

    product_id = Sequence(lambda n: f"product-{n}")
    name = Faker("word")
    unit_price = Decimal("9.99")


class OrderRecordFactory(Factory):
    """Factory for creating OrderRecord instances with sensible test
    defaults."""

    class Meta:
        model = OrderRecord

    id = Faker("uuid4")
    customer_name = Faker("name")
    customer_email = Faker("email")
    product_id = "1"
    product_name = "Widget"
    quantity = 1
    order_value = LazyAttribute(lambda obj: Decimal("10") * obj.quantity)


class DeletedOrderRecordFactory(OrderRecordFactory):
    class Meta:
        model = DeletedOrderRecord

    deleted_at = LazyFunction(lambda: datetime.now(timezone.utc))


def as_documents(*orders: OrderRecord) -> list:
    """Serialize records the way the repository stores them."""
    return [order.model_dump(mode="json") for order in orders]
