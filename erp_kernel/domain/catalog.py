"""
Product catalog reference data (read-only collaborator).

Manual lines may omit price, tax rate, unit of measure and SKU; the
document service fills them from whatever ``ProductCatalog`` it was given.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Protocol


@dataclass(frozen=True)
class ProductInfo:
    product_id: str
    name: str
    sku: str | None = None
    uom: str | None = None
    default_unit_price: Decimal | None = None
    default_tax_rate: Decimal | None = None


class ProductCatalog(Protocol):
    def lookup(self, product_id: str) -> ProductInfo | None: ...


class StaticProductCatalog:
    """In-memory catalog keyed by product id."""

    def __init__(self, products: Mapping[str, ProductInfo] | None = None):
        self._products = dict(products or {})

    def add(self, product: ProductInfo) -> None:
        self._products[product.product_id] = product

    def lookup(self, product_id: str) -> ProductInfo | None:
        return self._products.get(product_id)
