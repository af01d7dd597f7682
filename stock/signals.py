"""
Stock — Signals

stock_view_changed is sent after a stock mutation commits, naming the
affected branch. The receiver below drops the cached branch summary and
alert list; other apps may connect their own receivers. Catalog edits
(tracking flag, alert threshold, prices) change the same views, so they
raise it too.

@file stock/signals.py
"""

import logging
from functools import partial

from django.core.cache import cache
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from catalog.models import Product, ProductPrice
from core.constants import STOCK_ALERTS_CACHE_KEY, STOCK_SUMMARY_CACHE_KEY

from .models import StockBalance

logger = logging.getLogger('branchstock')

# Sent with branch_id=<UUID>
stock_view_changed = Signal()


def branch_cache_keys(branch_id) -> list[str]:
    return [
        STOCK_SUMMARY_CACHE_KEY.format(branch_id=branch_id),
        STOCK_ALERTS_CACHE_KEY.format(branch_id=branch_id),
    ]


def notify_stock_view_changed(branch_id) -> None:
    """Fire-and-forget: receiver failures are logged, never raised."""
    responses = stock_view_changed.send_robust(sender='stock', branch_id=branch_id)
    for handler, response in responses:
        if isinstance(response, Exception):
            logger.error(
                'stock_view_changed receiver %s failed for branch %s: %s',
                getattr(handler, '__qualname__', handler), branch_id, response,
            )


@receiver(stock_view_changed, dispatch_uid='stock.invalidate_branch_views')
def invalidate_branch_views(sender, branch_id, **kwargs):
    cache.delete_many(branch_cache_keys(branch_id))
    logger.debug('Invalidated cached stock views for branch %s', branch_id)


@receiver(post_save, sender=Product, dispatch_uid='stock.product_changed')
def product_changed(sender, instance, using, **kwargs):
    branch_ids = list(
        StockBalance.objects.using(using)
        .filter(product_id=instance.pk)
        .order_by()
        .values_list('branch_id', flat=True)
        .distinct()
    )
    for branch_id in branch_ids:
        transaction.on_commit(partial(notify_stock_view_changed, branch_id), using=using)


@receiver(post_save, sender=ProductPrice, dispatch_uid='stock.price_changed')
def price_changed(sender, instance, using, **kwargs):
    transaction.on_commit(partial(notify_stock_view_changed, instance.branch_id), using=using)
