"""
BranchStock — Root conftest for pytest

Shared fixtures available to all test modules.

@file conftest.py
"""

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from stock.memory import InMemoryStockBackend
from stock.queries import StockQueryService
from stock.services import StockService
from tests.factories import SuperuserFactory, UserFactory


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture
def user(db):
    """Active user without stock permissions; password TestPass2026!"""
    return UserFactory()


@pytest.fixture
def stock_clerk(db):
    """User allowed to adjust stock but not to configure balances."""
    return UserFactory(permissions=['stock.adjust_stock'])


@pytest.fixture
def stock_manager(db):
    """User allowed to adjust and configure stock."""
    return UserFactory(permissions=['stock.adjust_stock', 'stock.configure_stock'])


@pytest.fixture
def admin_user(db):
    """Superuser with default password TestPass2026!"""
    return SuperuserFactory()


@pytest.fixture
def authenticated_client(api_client, user):
    """API client authenticated as a regular user."""
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def clerk_client(api_client, stock_clerk):
    api_client.force_authenticate(user=stock_clerk)
    return api_client


@pytest.fixture
def manager_client(api_client, stock_manager):
    api_client.force_authenticate(user=stock_manager)
    return api_client


@pytest.fixture
def admin_client(api_client, admin_user):
    """API client authenticated as a superuser."""
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture
def memory_backend():
    """Database-free stores, unit of work and catalog."""
    return InMemoryStockBackend()


@pytest.fixture
def notified():
    """Collects branch ids passed to the view-changed notifier."""
    return []


@pytest.fixture
def memory_service(memory_backend, notified):
    return StockService(
        uow_factory=memory_backend.unit_of_work,
        catalog=memory_backend.catalog,
        notify=notified.append,
    )


@pytest.fixture
def memory_queries(memory_backend):
    return StockQueryService(
        balances=memory_backend.balances,
        ledger=memory_backend.ledger,
        catalog=memory_backend.catalog,
    )
