"""
Catalog — Read Interface

Narrow lookups the stock ledger needs from the product catalog: tracking
flag, alert threshold and unit type per product, and per-branch prices
for a tier. ProductCatalog is the seam; DjangoProductCatalog reads the
catalog tables.

@file catalog/services.py
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from .models import Branch, Product, ProductPrice


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    name: str
    tracking_enabled: bool
    min_stock_alert: Decimal | None
    unit_type: str
    is_active: bool = True


class ProductCatalog(ABC):
    """Product and price lookups consumed by the stock ledger."""

    @abstractmethod
    def get_products(self, product_ids: Iterable[UUID]) -> dict[UUID, ProductInfo]:
        """Return ProductInfo keyed by id; unknown ids are omitted."""

    @abstractmethod
    def get_prices(
        self, branch_id: UUID, product_ids: Iterable[UUID], price_type: str,
    ) -> dict[UUID, Decimal]:
        """Return the tier price per product at a branch; unpriced products are omitted."""

    @abstractmethod
    def has_branch(self, branch_id: UUID) -> bool:
        ...

    def get_product(self, product_id: UUID) -> ProductInfo | None:
        return self.get_products([product_id]).get(product_id)


class DjangoProductCatalog(ProductCatalog):

    def __init__(self, using: str | None = None):
        self.using = using

    def get_products(self, product_ids):
        rows = (
            Product.objects.using(self.using)
            .filter(pk__in=list(product_ids))
            .values('id', 'name', 'track_stock', 'min_stock_alert', 'unit_type', 'is_active')
        )
        return {
            row['id']: ProductInfo(
                id=row['id'],
                name=row['name'],
                tracking_enabled=row['track_stock'],
                min_stock_alert=row['min_stock_alert'],
                unit_type=row['unit_type'],
                is_active=row['is_active'],
            )
            for row in rows
        }

    def has_branch(self, branch_id):
        return Branch.objects.using(self.using).filter(pk=branch_id).exists()

    def get_prices(self, branch_id, product_ids, price_type):
        rows = (
            ProductPrice.objects.using(self.using)
            .filter(branch_id=branch_id, product_id__in=list(product_ids), price_type=price_type)
            .values_list('product_id', 'price')
        )
        return dict(rows)
