"""
Catalog — Models

Branches, products and per-branch price lists. The stock ledger only
reads these; product creation and price setting happen elsewhere.

@file catalog/models.py
"""

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel


class Branch(BaseModel):
    """A restaurant branch holding its own stock."""

    name = models.CharField(_('name'), max_length=200)
    address = models.CharField(_('address'), max_length=300, blank=True)
    is_active = models.BooleanField(_('active'), default=True)

    class Meta:
        verbose_name = _('branch')
        verbose_name_plural = _('branches')
        ordering = ['name']

    def __str__(self):
        return self.name


class Product(BaseModel):
    """
    A sellable product. track_stock decides whether its quantity is
    managed through the stock ledger at all; min_stock_alert is the
    low-stock threshold shared by every branch.
    """

    class UnitType(models.TextChoices):
        UNIT = 'UNIT', _('Unit')
        WEIGHT = 'WEIGHT', _('Weight')
        VOLUME = 'VOLUME', _('Volume')

    name = models.CharField(_('name'), max_length=200, db_index=True)
    sku = models.CharField(_('SKU'), max_length=64, blank=True)
    unit_type = models.CharField(
        _('unit type'), max_length=10,
        choices=UnitType.choices, default=UnitType.UNIT,
    )
    track_stock = models.BooleanField(_('track stock'), default=True)
    min_stock_alert = models.DecimalField(
        _('minimum stock alert'), max_digits=12, decimal_places=2,
        null=True, blank=True,
        validators=[MinValueValidator(0)],
    )
    is_active = models.BooleanField(_('active'), default=True)

    class Meta:
        verbose_name = _('product')
        verbose_name_plural = _('products')
        ordering = ['name']

    def __str__(self):
        return self.name


class ProductPrice(BaseModel):
    """Price of a product at a branch for one service tier."""

    class PriceType(models.TextChoices):
        DINE_IN = 'DINE_IN', _('Dine in')
        TAKE_AWAY = 'TAKE_AWAY', _('Take away')
        DELIVERY = 'DELIVERY', _('Delivery')

    product = models.ForeignKey(
        Product, on_delete=models.CASCADE,
        related_name='prices', verbose_name=_('product'),
    )
    branch = models.ForeignKey(
        Branch, on_delete=models.CASCADE,
        related_name='prices', verbose_name=_('branch'),
    )
    price_type = models.CharField(
        _('price type'), max_length=10, choices=PriceType.choices,
    )
    price = models.DecimalField(_('price'), max_digits=12, decimal_places=2)

    class Meta:
        verbose_name = _('product price')
        verbose_name_plural = _('product prices')
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'branch', 'price_type'],
                name='catalog_price_unique_tier',
            ),
        ]

    def __str__(self):
        return f'{self.product_id}@{self.branch_id} {self.price_type}={self.price}'
