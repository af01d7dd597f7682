"""
Stock — Stores & Unit of Work

The stock service never touches the ORM directly. It works through:

  BalanceStore  current quantity per (product, branch), row lock + CAS
  LedgerStore   append-only movement chain per balance
  UnitOfWork    explicit transaction scope bundling both stores; rolls
                back on any exception leaving the ``with`` block

Django implementations live here; in-memory fakes for tests live in
stock/memory.py.

@file stock/stores.py
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from django.db import (
    DEFAULT_DB_ALIAS,
    DataError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    transaction,
)
from django.db.models import F
from django.utils import timezone

from core.exceptions import StorageConflictError, StorageRejectedError, StorageUnavailableError
from core.services import AuditService

from .models import BalanceKey, StockBalance, StockMovement

logger = logging.getLogger('branchstock')

# PostgreSQL serialization_failure and deadlock_detected
CONFLICT_SQLSTATES = {'40001', '40P01'}


@dataclass(frozen=True)
class MovementQuery:
    """Filter for movement history; every field is optional."""

    key: BalanceKey | None = None
    product_id: UUID | None = None
    branch_id: UUID | None = None
    reason_contains: str = ''
    start: datetime | None = None
    end: datetime | None = None


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class BalanceStore(ABC):

    @abstractmethod
    def get(self, key: BalanceKey) -> StockBalance | None:
        """Read a balance without locking."""

    @abstractmethod
    def lock(self, key: BalanceKey) -> StockBalance | None:
        """Read a balance and hold its row lock until the unit of work ends."""

    @abstractmethod
    def create(
        self, key: BalanceKey, *,
        min_stock: Decimal | None = None, max_stock: Decimal | None = None,
    ) -> tuple[StockBalance, bool]:
        """Get or create the balance at quantity 0. Returns (balance, created)."""

    @abstractmethod
    def compare_and_set(
        self, balance: StockBalance, *,
        quantity: Decimal, last_restocked_at: datetime | None,
    ) -> StockBalance:
        """
        Write a new quantity if the stored version still equals
        balance.version; bumps the version. Raises StorageConflictError
        otherwise.
        """

    @abstractmethod
    def update_settings(self, balance: StockBalance, **fields) -> StockBalance:
        """Write non-quantity fields (thresholds, is_active)."""

    @abstractmethod
    def list_for_branch(self, branch_id: UUID, *, active_only: bool = True) -> list[StockBalance]:
        ...

    @abstractmethod
    def list_keys(self, branch_id: UUID | None = None) -> list[BalanceKey]:
        ...


class LedgerStore(ABC):

    @abstractmethod
    def append(
        self, balance: StockBalance, *,
        sequence: int,
        delta: Decimal,
        previous_quantity: Decimal,
        resulting_quantity: Decimal,
        reason: str,
        notes: str = '',
        external_reference: str = '',
        actor_id: str = '',
        created_at: datetime,
    ) -> StockMovement:
        ...

    @abstractmethod
    def chain(self, key: BalanceKey) -> list[StockMovement]:
        """All movements of a balance, oldest first."""

    @abstractmethod
    def search(self, query: MovementQuery, limit: int) -> list[StockMovement]:
        """Matching movements, newest first, at most ``limit``."""


class UnitOfWork(ABC):
    """
    One atomic scope over both stores. Use as a context manager; any
    exception leaving the block rolls back every write made through
    ``balances`` and ``ledger``. Callbacks registered with on_commit run
    only after a successful commit.
    """

    balances: BalanceStore
    ledger: LedgerStore

    @abstractmethod
    def __enter__(self) -> 'UnitOfWork':
        ...

    @abstractmethod
    def __exit__(self, exc_type, exc, tb) -> bool | None:
        ...

    @abstractmethod
    def on_commit(self, func: Callable[[], Any]) -> None:
        ...

    @abstractmethod
    def audit(
        self, *, actor_id: str, action: str, model_name: str, object_id: str,
        old_values: dict | None = None, new_values: dict | None = None,
    ) -> None:
        ...


# ---------------------------------------------------------------------------
# Django implementations
# ---------------------------------------------------------------------------

class DjangoBalanceStore(BalanceStore):

    def __init__(self, using: str = DEFAULT_DB_ALIAS):
        self.using = using

    def _queryset(self):
        return StockBalance.objects.using(self.using)

    def get(self, key):
        return self._queryset().filter(
            product_id=key.product_id, branch_id=key.branch_id,
        ).first()

    def lock(self, key):
        return self._queryset().select_for_update().filter(
            product_id=key.product_id, branch_id=key.branch_id,
        ).first()

    def create(self, key, *, min_stock=None, max_stock=None):
        return self._queryset().get_or_create(
            product_id=key.product_id,
            branch_id=key.branch_id,
            defaults={'min_stock': min_stock, 'max_stock': max_stock},
        )

    def compare_and_set(self, balance, *, quantity, last_restocked_at):
        now = timezone.now()
        updated = self._queryset().filter(pk=balance.pk, version=balance.version).update(
            quantity=quantity,
            last_restocked_at=last_restocked_at,
            version=F('version') + 1,
            updated_at=now,
        )
        if updated != 1:
            raise StorageConflictError(
                detail=f'Stock balance {balance.key} was modified concurrently.',
            )
        balance.quantity = quantity
        balance.last_restocked_at = last_restocked_at
        balance.version += 1
        balance.updated_at = now
        return balance

    def update_settings(self, balance, **fields):
        now = timezone.now()
        self._queryset().filter(pk=balance.pk).update(updated_at=now, **fields)
        for name, value in fields.items():
            setattr(balance, name, value)
        balance.updated_at = now
        return balance

    def list_for_branch(self, branch_id, *, active_only=True):
        qs = self._queryset().filter(branch_id=branch_id)
        if active_only:
            qs = qs.filter(is_active=True)
        return list(qs.select_related('product').order_by('product__name', 'product_id'))

    def list_keys(self, branch_id=None):
        qs = self._queryset()
        if branch_id is not None:
            qs = qs.filter(branch_id=branch_id)
        return [
            BalanceKey(product_id, balance_branch_id)
            for product_id, balance_branch_id in qs.order_by('branch_id', 'product_id').values_list('product_id', 'branch_id')
        ]


class DjangoLedgerStore(LedgerStore):

    def __init__(self, using: str = DEFAULT_DB_ALIAS):
        self.using = using

    def _queryset(self):
        return StockMovement.objects.using(self.using)

    def append(
        self, balance, *, sequence, delta, previous_quantity, resulting_quantity,
        reason, notes='', external_reference='', actor_id='', created_at,
    ):
        movement = StockMovement(
            balance=balance,
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
        movement.save(using=self.using, force_insert=True)
        return movement

    def chain(self, key):
        return list(
            self._queryset()
            .filter(balance__product_id=key.product_id, balance__branch_id=key.branch_id)
            .select_related('balance')
            .order_by('sequence')
        )

    def search(self, query, limit):
        qs = self._queryset().select_related('balance')
        if query.key is not None:
            qs = qs.filter(
                balance__product_id=query.key.product_id,
                balance__branch_id=query.key.branch_id,
            )
        if query.product_id is not None:
            qs = qs.filter(balance__product_id=query.product_id)
        if query.branch_id is not None:
            qs = qs.filter(balance__branch_id=query.branch_id)
        if query.reason_contains:
            qs = qs.filter(reason__icontains=query.reason_contains)
        if query.start is not None:
            qs = qs.filter(created_at__gte=query.start)
        if query.end is not None:
            qs = qs.filter(created_at__lte=query.end)
        return list(qs.order_by('-created_at', '-sequence')[:limit])


class DjangoUnitOfWork(UnitOfWork):
    """transaction.atomic scope on one database alias."""

    def __init__(self, using: str | None = None):
        self.using = using or DEFAULT_DB_ALIAS
        self.balances = DjangoBalanceStore(self.using)
        self.ledger = DjangoLedgerStore(self.using)
        self._atomic = None

    def __enter__(self):
        self._atomic = transaction.atomic(using=self.using)
        self._atomic.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb):
        atomic, self._atomic = self._atomic, None
        return atomic.__exit__(exc_type, exc, tb)

    def on_commit(self, func):
        transaction.on_commit(func, using=self.using)

    def audit(self, *, actor_id, action, model_name, object_id, old_values=None, new_values=None):
        AuditService.log(
            actor_id=actor_id,
            action=action,
            model_name=model_name,
            object_id=object_id,
            old_values=old_values,
            new_values=new_values,
            using=self.using,
        )


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def _sqlstate(exc: Exception) -> str | None:
    cause = exc.__cause__
    return getattr(cause, 'sqlstate', None) or getattr(cause, 'pgcode', None)


@contextmanager
def translate_storage_errors():
    """
    Map driver errors raised by a unit of work onto the stock error
    taxonomy: write conflicts become StorageConflictError (retryable),
    values the column cannot hold become StorageRejectedError and lost
    connections become StorageUnavailableError.
    """
    try:
        yield
    except DataError as exc:
        logger.error('Stock storage rejected a value: %s', exc)
        raise StorageRejectedError(detail=f'Stock write rejected by the store: {exc}') from exc
    except IntegrityError as exc:
        raise StorageConflictError(detail=f'Stock write rejected by the store: {exc}') from exc
    except OperationalError as exc:
        if _sqlstate(exc) in CONFLICT_SQLSTATES or 'database is locked' in str(exc):
            raise StorageConflictError() from exc
        logger.error('Stock storage operational error: %s', exc)
        raise StorageUnavailableError() from exc
    except InterfaceError as exc:
        logger.error('Stock storage interface error: %s', exc)
        raise StorageUnavailableError() from exc
