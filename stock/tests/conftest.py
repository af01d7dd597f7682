"""
Stock test fixtures: open balances against the in-memory backend.

@file stock/tests/conftest.py
"""

import pytest

from stock.models import BalanceKey


@pytest.fixture
def branch_id(memory_backend):
    return memory_backend.catalog.add_branch()


@pytest.fixture
def open_balance(memory_backend, memory_service, branch_id, notified):
    """
    Register a product in the in-memory catalog and open its balance.
    tracking_enabled=False switches tracking off after opening, the way a
    catalog edit would.
    """

    def _open(name='Flour', *, tracking_enabled=True, min_stock_alert=None, is_active=True, branch=None):
        branch = branch or branch_id
        product = memory_backend.catalog.add_product(name, min_stock_alert=min_stock_alert, is_active=is_active)
        memory_service.open_balance(product.id, branch)
        if not tracking_enabled:
            memory_backend.catalog.update_product(product.id, tracking_enabled=False)
        notified.clear()
        return BalanceKey(product.id, branch)

    return _open
