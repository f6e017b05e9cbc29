"""
Local YAML-based implementation of ProductCatalog.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from ledger.domain import Product
from ledger.repositories import ProductCatalog

logger = logging.getLogger(__name__)


class LocalProductCatalog(ProductCatalog):
    """
    Local YAML file implementation of ProductCatalog.

    The file is read once, when the catalog is constructed. Expected shape::

        products:
          - product_id: "1"
            name: Laptop
            unit_price: "999.99"
    """

    def __init__(self, config_path: str) -> None:
        """
        Load the catalog from a YAML file.

        Args:
            config_path: Path to YAML catalog file, supports ~ expansion

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a valid catalog
        """
        self.config_path = Path(config_path).expanduser()
        self._products: Dict[str, Product] = {}
        for product in self._load():
            if product.product_id in self._products:
                raise ValueError(
                    f"Duplicate product id {product.product_id} in "
                    f"{self.config_path}"
                )
            self._products[product.product_id] = product

        logger.info(
            f"Loaded product catalog from {self.config_path}",
            extra={"product_count": len(self._products)},
        )

    def _load(self) -> List[Product]:
        with open(self.config_path, "r") as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            logger.error(
                f"Catalog file must contain a YAML dictionary: "
                f"{self.config_path}"
            )
            raise ValueError(f"Invalid catalog file: {self.config_path}")

        entries = config_data.get("products")
        if not isinstance(entries, list):
            logger.error(
                f"'products' must be a list in catalog file: "
                f"{self.config_path}"
            )
            raise ValueError(f"Invalid catalog file: {self.config_path}")

        products = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValueError(
                    f"Catalog entries must be mappings: {self.config_path}"
                )
            try:
                products.append(
                    Product(
                        product_id=str(entry.get("product_id", "")),
                        name=entry.get("name", ""),
                        # str() keeps YAML floats like 0.1 exact
                        unit_price=str(entry.get("unit_price", "")),
                    )
                )
            except ValidationError as e:
                logger.error(
                    f"Failed to parse product {entry.get('product_id')}: {e}"
                )
                raise ValueError(
                    f"Invalid product entry in {self.config_path}: {e}"
                ) from e
        return products

    async def get_product(self, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        if product is None:
            logger.debug(f"Product not found: {product_id}")
        return product

    async def list_products(self) -> List[Product]:
        return list(self._products.values())
