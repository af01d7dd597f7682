"""
Stock — In-Memory Backend

Process-local implementations of the stores, the unit of work and the
product catalog. Used by the test-suite to exercise the stock service
without a database, including its concurrency behaviour.

Stored balances are never mutated in place: every read hands out a copy
and every write replaces the stored instance, so a unit of work can roll
back by restoring a shallow snapshot of the balance map.

@file stock/memory.py
"""

import copy
import threading
import uuid
from dataclasses import replace
from decimal import Decimal

from django.utils import timezone

from catalog.services import ProductCatalog, ProductInfo
from core.exceptions import StorageConflictError

from .models import BalanceKey, StockBalance, StockMovement
from .stores import BalanceStore, LedgerStore, UnitOfWork


class InMemoryStockState:
    """Shared state behind the in-memory stores."""

    def __init__(self):
        self.balances: dict[BalanceKey, StockBalance] = {}
        self.movements: list[StockMovement] = []
        self.audit_entries: list[dict] = []
        self.lock = threading.RLock()


class InMemoryBalanceStore(BalanceStore):

    def __init__(self, state: InMemoryStockState):
        self.state = state

    def get(self, key):
        with self.state.lock:
            balance = self.state.balances.get(key)
            return copy.copy(balance) if balance is not None else None

    def lock(self, key):
        # The unit of work already holds the state lock.
        return self.get(key)

    def create(self, key, *, min_stock=None, max_stock=None):
        with self.state.lock:
            existing = self.state.balances.get(key)
            if existing is not None:
                return copy.copy(existing), False
            now = timezone.now()
            balance = StockBalance(
                id=uuid.uuid4(),
                product_id=key.product_id,
                branch_id=key.branch_id,
                quantity=Decimal('0'),
                min_stock=min_stock,
                max_stock=max_stock,
                is_active=True,
                version=0,
                created_at=now,
                updated_at=now,
            )
            self.state.balances[key] = balance
            return copy.copy(balance), True

    def compare_and_set(self, balance, *, quantity, last_restocked_at):
        with self.state.lock:
            stored = self.state.balances.get(balance.key)
            if stored is None or stored.version != balance.version:
                raise StorageConflictError(
                    detail=f'Stock balance {balance.key} was modified concurrently.',
                )
            balance.quantity = quantity
            balance.last_restocked_at = last_restocked_at
            balance.version += 1
            balance.updated_at = timezone.now()
            self.state.balances[balance.key] = copy.copy(balance)
            return balance

    def update_settings(self, balance, **fields):
        with self.state.lock:
            for name, value in fields.items():
                setattr(balance, name, value)
            balance.updated_at = timezone.now()
            self.state.balances[balance.key] = copy.copy(balance)
            return balance

    def list_for_branch(self, branch_id, *, active_only=True):
        with self.state.lock:
            balances = [
                copy.copy(balance)
                for key, balance in self.state.balances.items()
                if key.branch_id == branch_id and (balance.is_active or not active_only)
            ]
        return sorted(balances, key=lambda balance: str(balance.product_id))

    def list_keys(self, branch_id=None):
        with self.state.lock:
            keys = [key for key in self.state.balances if branch_id is None or key.branch_id == branch_id]
        return sorted(keys, key=lambda key: (str(key.branch_id), str(key.product_id)))


class InMemoryLedgerStore(LedgerStore):

    def __init__(self, state: InMemoryStockState):
        self.state = state

    def append(
        self, balance, *, sequence, delta, previous_quantity, resulting_quantity,
        reason, notes='', external_reference='', actor_id='', created_at,
    ):
        with self.state.lock:
            key = balance.key
            if any(m.balance.key == key and m.sequence == sequence for m in self.state.movements):
                raise StorageConflictError(
                    detail=f'Movement {sequence} already exists for {key}.',
                )
            movement = StockMovement(
                id=uuid.uuid4(),
                balance=copy.copy(balance),
                sequence=sequence,
                delta=delta,
                previous_quantity=previous_quantity,
                resulting_quantity=resulting_quantity,
                reason=reason,
                notes=notes or '',
                external_reference=external_reference or '',
                actor_id=actor_id or '',
                created_at=created_at,
            )
            movement.clean()
            self.state.movements.append(movement)
            return movement

    def chain(self, key):
        with self.state.lock:
            movements = [m for m in self.state.movements if m.balance.key == key]
        return sorted(movements, key=lambda m: m.sequence)

    def search(self, query, limit):
        needle = query.reason_contains.casefold()
        matches = []
        with self.state.lock:
            movements = list(self.state.movements)
        for position, movement in enumerate(movements):
            key = movement.balance.key
            if query.key is not None and key != query.key:
                continue
            if query.product_id is not None and key.product_id != query.product_id:
                continue
            if query.branch_id is not None and key.branch_id != query.branch_id:
                continue
            if needle and needle not in movement.reason.casefold():
                continue
            if query.start is not None and movement.created_at < query.start:
                continue
            if query.end is not None and movement.created_at > query.end:
                continue
            matches.append((movement.created_at, position, movement))
        matches.sort(key=lambda match: (match[0], match[1]), reverse=True)
        return [movement for _, _, movement in matches[:limit]]


class InMemoryUnitOfWork(UnitOfWork):
    """
    Serialises units of work on the state lock. Entering takes a snapshot;
    leaving with an exception restores it and drops pending callbacks.
    """

    def __init__(self, state: InMemoryStockState):
        self.state = state
        self.balances = InMemoryBalanceStore(state)
        self.ledger = InMemoryLedgerStore(state)
        self._callbacks = []

    def __enter__(self):
        self.state.lock.acquire()
        self._balances_snapshot = dict(self.state.balances)
        self._movement_count = len(self.state.movements)
        self._audit_count = len(self.state.audit_entries)
        self._callbacks = []
        return self

    def __exit__(self, exc_type, exc, tb):
        callbacks, self._callbacks = self._callbacks, []
        try:
            if exc_type is not None:
                self.state.balances.clear()
                self.state.balances.update(self._balances_snapshot)
                del self.state.movements[self._movement_count:]
                del self.state.audit_entries[self._audit_count:]
                return False
        finally:
            self.state.lock.release()
        for func in callbacks:
            func()
        return False

    def on_commit(self, func):
        self._callbacks.append(func)

    def audit(self, *, actor_id, action, model_name, object_id, old_values=None, new_values=None):
        self.state.audit_entries.append({
            'actor_id': actor_id or '',
            'action': action,
            'model_name': model_name,
            'object_id': str(object_id),
            'old_values': old_values,
            'new_values': new_values,
        })


class InMemoryProductCatalog(ProductCatalog):

    def __init__(self):
        self.products: dict[uuid.UUID, ProductInfo] = {}
        self.branches: set[uuid.UUID] = set()
        self.prices: dict[tuple[uuid.UUID, uuid.UUID, str], Decimal] = {}

    def add_branch(self, branch_id=None) -> uuid.UUID:
        branch_id = branch_id or uuid.uuid4()
        self.branches.add(branch_id)
        return branch_id

    def add_product(
        self, name, *, tracking_enabled=True, min_stock_alert=None,
        unit_type='UNIT', is_active=True, product_id=None,
    ) -> ProductInfo:
        product = ProductInfo(
            id=product_id or uuid.uuid4(),
            name=name,
            tracking_enabled=tracking_enabled,
            min_stock_alert=min_stock_alert,
            unit_type=unit_type,
            is_active=is_active,
        )
        self.products[product.id] = product
        return product

    def update_product(self, product_id, **changes) -> ProductInfo:
        product = replace(self.products[product_id], **changes)
        self.products[product_id] = product
        return product

    def set_price(self, branch_id, product_id, price, price_type='DINE_IN'):
        self.prices[(branch_id, product_id, price_type)] = Decimal(price)

    def get_products(self, product_ids):
        return {pid: self.products[pid] for pid in product_ids if pid in self.products}

    def get_prices(self, branch_id, product_ids, price_type):
        prices = {}
        for product_id in product_ids:
            price = self.prices.get((branch_id, product_id, price_type))
            if price is not None:
                prices[product_id] = price
        return prices

    def has_branch(self, branch_id):
        return branch_id in self.branches


class InMemoryStockBackend:
    """Bundle of in-memory state, stores and catalog for wiring services in tests."""

    def __init__(self):
        self.state = InMemoryStockState()
        self.catalog = InMemoryProductCatalog()
        self.balances = InMemoryBalanceStore(self.state)
        self.ledger = InMemoryLedgerStore(self.state)

    def unit_of_work(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self.state)
