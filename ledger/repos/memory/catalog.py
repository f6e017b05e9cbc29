"""
Memory implementation of ProductCatalog.

The catalog is a static table. Without explicit products the built-in
table below is used.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ledger.domain import Product
from ledger.repositories import ProductCatalog

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTS = (
    Product(product_id="1", name="Laptop", unit_price=Decimal("999.99")),
    Product(product_id="2", name="Smartphone", unit_price=Decimal("699.99")),
    Product(product_id="3", name="Headphones", unit_price=Decimal("199.99")),
    Product(product_id="4", name="Tablet", unit_price=Decimal("499.99")),
    Product(product_id="5", name="Smartwatch", unit_price=Decimal("299.99")),
)


class MemoryProductCatalog(ProductCatalog):
    """ProductCatalog backed by a dictionary keyed by product_id."""

    def __init__(self, products: Optional[Iterable[Product]] = None) -> None:
        self._products: Dict[str, Product] = {}
        for product in DEFAULT_PRODUCTS if products is None else products:
            if product.product_id in self._products:
                raise ValueError(
                    f"Duplicate product id in catalog: {product.product_id}"
                )
            self._products[product.product_id] = product
        logger.debug(
            "Initializing MemoryProductCatalog",
            extra={"product_count": len(self._products)},
        )

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    async def list_products(self) -> List[Product]:
        return list(self._products.values())
