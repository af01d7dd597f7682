"""
Stock — Models

Per-branch stock balances and their append-only movement ledger.

StockBalance holds the live quantity for one (product, branch) pair and is
a cached projection of the tail of its StockMovement chain. Quantity is
written only by the stock service, under a row lock with a version
compare-and-swap. StockMovement rows are INSERT ONLY and never update or
delete.

@file stock/models.py
"""

import uuid
from decimal import Decimal
from typing import NamedTuple

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel

QUANTITY_MAX_DIGITS = 12
QUANTITY_DECIMAL_PLACES = 2


class BalanceKey(NamedTuple):
    """Composite identity of a balance: one product at one branch."""

    product_id: uuid.UUID
    branch_id: uuid.UUID

    def __str__(self):
        return f'{self.product_id}@{self.branch_id}'


class StockStatus(models.TextChoices):
    IN_STOCK = 'IN_STOCK', _('In stock')
    LOW_STOCK = 'LOW_STOCK', _('Low stock')
    OUT_OF_STOCK = 'OUT_OF_STOCK', _('Out of stock')
    ALWAYS_AVAILABLE = 'ALWAYS_AVAILABLE', _('Always available')


class StockBalance(BaseModel):
    """
    Current stock of one product at one branch.

    min_stock / max_stock are advisory per-branch thresholds, never
    enforced as bounds. Balances are never deleted, only deactivated.
    """

    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.PROTECT,
        related_name='stock_balances',
        verbose_name=_('product'),
    )
    branch = models.ForeignKey(
        'catalog.Branch',
        on_delete=models.PROTECT,
        related_name='stock_balances',
        verbose_name=_('branch'),
    )
    quantity = models.DecimalField(
        _('quantity'),
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES,
        default=Decimal('0'),
    )
    min_stock = models.DecimalField(
        _('minimum stock'),
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES,
        null=True, blank=True,
    )
    max_stock = models.DecimalField(
        _('maximum stock'),
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES,
        null=True, blank=True,
    )
    last_restocked_at = models.DateTimeField(_('last restocked at'), null=True, blank=True)
    is_active = models.BooleanField(_('active'), default=True, db_index=True)
    version = models.PositiveIntegerField(
        _('version'), default=0,
        help_text=_('Incremented on every quantity write; used for compare-and-swap.'),
    )

    class Meta:
        db_table = 'stock_balances'
        verbose_name = _('stock balance')
        verbose_name_plural = _('stock balances')
        ordering = ['branch', 'product']
        constraints = [
            models.UniqueConstraint(fields=['product', 'branch'], name='stock_balance_unique_key'),
            models.CheckConstraint(condition=Q(quantity__gte=0), name='stock_balance_non_negative'),
        ]
        indexes = [
            models.Index(fields=['branch', 'is_active'], name='stock_balance_branch_idx'),
        ]
        permissions = [
            ('adjust_stock', 'Can adjust stock levels'),
            ('configure_stock', 'Can configure stock thresholds and visibility'),
        ]

    def __str__(self):
        return f'{self.key} qty={self.quantity}'

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(self.product_id, self.branch_id)

    def clean(self):
        if self.min_stock is not None and self.max_stock is not None and self.min_stock > self.max_stock:
            raise ValidationError({'min_stock': _('Minimum stock cannot exceed maximum stock.')})

    def delete(self, *args, **kwargs):
        raise NotImplementedError('StockBalance records cannot be deleted; deactivate them instead.')


class StockMovement(models.Model):
    """
    A single immutable stock movement (insert only).

    sequence is the position of the movement in its balance's chain,
    starting at 1; (balance, sequence) is unique, so two writers can never
    append the same link.
    """

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False,
    )
    balance = models.ForeignKey(
        StockBalance,
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('balance'),
    )
    sequence = models.PositiveIntegerField(_('sequence'))
    delta = models.DecimalField(
        _('delta'),
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES,
    )
    previous_quantity = models.DecimalField(
        _('previous quantity'),
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES,
    )
    resulting_quantity = models.DecimalField(
        _('resulting quantity'),
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES,
    )
    reason = models.CharField(_('reason'), max_length=100, db_index=True)
    notes = models.TextField(_('notes'), blank=True)
    external_reference = models.CharField(
        _('external reference'), max_length=100, blank=True,
        help_text=_('Identifier of the source event (delivery note, order, count sheet).'),
    )
    actor_id = models.CharField(
        _('actor'), max_length=100, blank=True,
        help_text=_('User primary key or system process that triggered the movement.'),
    )
    created_at = models.DateTimeField(_('created at'), default=timezone.now, editable=False, db_index=True)
    # No updated_at: rows are immutable.

    class Meta:
        db_table = 'stock_movements'
        verbose_name = _('stock movement')
        verbose_name_plural = _('stock movements')
        ordering = ['-created_at', '-sequence']
        constraints = [
            models.UniqueConstraint(fields=['balance', 'sequence'], name='stock_movement_unique_sequence'),
        ]
        indexes = [
            models.Index(fields=['created_at', 'sequence'], name='stock_movement_created_idx'),
        ]

    def __str__(self):
        return f'{self.reason} {self.delta:+} balance={self.balance_id} #{self.sequence}'

    def clean(self):
        if self.previous_quantity + self.delta != self.resulting_quantity:
            raise ValidationError(_('resulting_quantity must equal previous_quantity + delta.'))

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise NotImplementedError('StockMovement is insert-only; updates are not allowed.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise NotImplementedError('StockMovement records cannot be deleted.')
