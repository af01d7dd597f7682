"""
Stock — Service Layer

Adjustment engine and bulk coordinator for per-branch stock balances.

Every quantity change goes through StockService: the balance row is
locked, the new quantity is checked against zero, written with a version
compare-and-swap and an immutable StockMovement is appended in the same
unit of work. A batch either applies every item or none of them.

INSERT ONLY — movements are never updated or deleted.

@file stock/services.py
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Callable, Iterable, TypeVar
from uuid import UUID

from django.conf import settings
from django.utils import timezone
from rest_framework.exceptions import APIException

from catalog.services import DjangoProductCatalog, ProductCatalog
from core.constants import (
    AUDIT_ACTION_CREATE,
    AUDIT_ACTION_STATUS_CHANGE,
    AUDIT_ACTION_UPDATE,
    STOCK_CONFLICT_RETRIES,
)
from core.exceptions import (
    BatchAbortedError,
    BusinessRuleViolation,
    InvalidStateTransition,
    NegativeStockError,
    ResourceNotFoundError,
    StorageConflictError,
    StorageUnavailableError,
    TrackingDisabledError,
)
from core.services import AuditService

from .models import QUANTITY_DECIMAL_PLACES, QUANTITY_MAX_DIGITS, BalanceKey, StockBalance, StockMovement
from .signals import notify_stock_view_changed
from .stores import DjangoUnitOfWork, UnitOfWork, translate_storage_errors

logger = logging.getLogger('branchstock')

T = TypeVar('T')

INITIAL_STOCK_REASON = 'initial stock'
QUANTITY_LIMIT = Decimal(10) ** (QUANTITY_MAX_DIGITS - QUANTITY_DECIMAL_PLACES)
TEXT_FIELD_MAX_LENGTH = 100


def ledger_setting(name: str, default):
    """Read one key of settings.STOCK_LEDGER, falling back to ``default``."""
    return getattr(settings, 'STOCK_LEDGER', {}).get(name, default)


def to_quantity(value, field: str = 'delta') -> Decimal:
    """
    Coerce ``value`` to a Decimal stock quantity. Rejects non-numbers,
    NaN/Infinity, more than two decimal places and values too large to
    store.
    """
    if isinstance(value, bool):
        raise BusinessRuleViolation(detail=f'{field} must be a decimal number.')
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise BusinessRuleViolation(detail=f'{field} must be a decimal number.')
    if not number.is_finite():
        raise BusinessRuleViolation(detail=f'{field} must be a finite number.')
    if number.as_tuple().exponent < -QUANTITY_DECIMAL_PLACES:
        raise BusinessRuleViolation(
            detail=f'{field} supports at most {QUANTITY_DECIMAL_PLACES} decimal places.',
        )
    if abs(number) >= QUANTITY_LIMIT:
        raise BusinessRuleViolation(detail=f'{field} is out of range.')
    return number


def _optional_quantity(value, field: str) -> Decimal | None:
    if value is None:
        return None
    number = to_quantity(value, field)
    if number < 0:
        raise BusinessRuleViolation(detail=f'{field} cannot be negative.')
    return number


def _lock_order(key: BalanceKey) -> tuple[str, str]:
    return str(key.product_id), str(key.branch_id)


@dataclass(frozen=True)
class AdjustInput:
    """One requested quantity change. ``delta`` is signed."""

    key: BalanceKey
    delta: Decimal
    reason: str
    notes: str = ''
    external_reference: str = ''
    actor_id: str = ''


@dataclass(frozen=True)
class AdjustmentResult:
    balance: StockBalance
    movement: StockMovement


class StockService:
    """
    Adjustment engine, bulk coordinator and balance configuration.

    Collaborators are injected so the same logic runs against the
    database (DjangoUnitOfWork, DjangoProductCatalog) or the in-memory
    backend used by tests.

    Usage:
        service = StockService()
        result = service.adjust(AdjustInput(key, Decimal('5.5'), 'delivery'))
    """

    def __init__(
        self,
        *,
        uow_factory: Callable[[], UnitOfWork] = DjangoUnitOfWork,
        catalog: ProductCatalog | None = None,
        notify: Callable[[UUID], None] | None = None,
        clock: Callable = timezone.now,
        conflict_retries: int | None = None,
    ):
        self.uow_factory = uow_factory
        self.catalog = catalog if catalog is not None else DjangoProductCatalog()
        self.notify = notify if notify is not None else notify_stock_view_changed
        self.clock = clock
        if conflict_retries is None:
            conflict_retries = ledger_setting('CONFLICT_RETRIES', STOCK_CONFLICT_RETRIES)
        self.conflict_retries = conflict_retries

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    def adjust(self, item: AdjustInput, *, uow: UnitOfWork | None = None) -> AdjustmentResult:
        """
        Apply one signed delta. Raises ResourceNotFoundError,
        TrackingDisabledError or NegativeStockError without writing
        anything. When ``uow`` is given the caller owns the transaction
        and its retry policy.
        """
        item = self._validated(item)

        def work(active_uow):
            result = self._apply(active_uow, item)
            self._schedule_notification(active_uow, [item.key.branch_id])
            return result

        if uow is not None:
            return work(uow)
        return self._run(work)

    def adjust_many(self, items: Iterable[AdjustInput]) -> list[AdjustmentResult]:
        """
        Apply a batch atomically, in input order. The first failing item
        aborts the batch with BatchAbortedError carrying its index; nothing
        is written. Balances are locked up front in (product, branch)
        order so overlapping batches cannot deadlock.
        """
        validated = []
        for index, item in enumerate(items):
            try:
                validated.append(self._validated(item))
            except BusinessRuleViolation as exc:
                raise BatchAbortedError(index=index, key=item.key, cause=exc) from exc
        if not validated:
            return []

        def work(uow):
            for key in sorted({item.key for item in validated}, key=_lock_order):
                uow.balances.lock(key)
            results = []
            for index, item in enumerate(validated):
                try:
                    results.append(self._apply(uow, item))
                except (StorageConflictError, StorageUnavailableError):
                    raise
                except APIException as exc:
                    logger.warning(
                        'Bulk adjustment aborted at item %d (%s): %s',
                        index, item.key, exc.detail,
                    )
                    raise BatchAbortedError(index=index, key=item.key, cause=exc) from exc
            self._schedule_notification(uow, [item.key.branch_id for item in validated])
            return results

        results = self._run(work)
        logger.info('Bulk adjustment applied %d items.', len(results))
        return results

    def set_initial_stock(self, key: BalanceKey, target_quantity, *, actor_id: str = '') -> AdjustmentResult:
        """
        Bring a balance to ``target_quantity`` by recording the difference
        as an "initial stock" movement. The current quantity is read under
        the same lock as the write.
        """
        target = to_quantity(target_quantity, 'target_quantity')

        def work(uow):
            balance = uow.balances.lock(key)
            if balance is None:
                raise ResourceNotFoundError(detail=self._missing_detail(key))
            item = AdjustInput(
                key=key,
                delta=target - balance.quantity,
                reason=INITIAL_STOCK_REASON,
                notes=f'Initial stock set to {target}.',
                actor_id=actor_id,
            )
            result = self._apply(uow, item)
            self._schedule_notification(uow, [key.branch_id])
            return result

        return self._run(work)

    # ------------------------------------------------------------------
    # Balance configuration
    # ------------------------------------------------------------------

    def open_balance(
        self, product_id: UUID, branch_id: UUID, *,
        min_stock=None, max_stock=None, actor_id: str = '',
    ) -> tuple[StockBalance, bool]:
        """Create the balance for a product at a branch at quantity 0 (idempotent)."""
        min_stock = _optional_quantity(min_stock, 'min_stock')
        max_stock = _optional_quantity(max_stock, 'max_stock')
        self._check_thresholds(min_stock, max_stock)
        product = self.catalog.get_product(product_id)
        if product is None:
            raise ResourceNotFoundError(detail=f'Product {product_id} not found.')
        if not self.catalog.has_branch(branch_id):
            raise ResourceNotFoundError(detail=f'Branch {branch_id} not found.')
        if not product.tracking_enabled:
            raise TrackingDisabledError(detail=f'Product {product.name} does not track stock.')

        key = BalanceKey(product_id, branch_id)

        def work(uow):
            balance, created = uow.balances.create(key, min_stock=min_stock, max_stock=max_stock)
            if created:
                uow.audit(
                    actor_id=actor_id,
                    action=AUDIT_ACTION_CREATE,
                    model_name='StockBalance',
                    object_id=str(balance.pk),
                    new_values=AuditService.snapshot(balance, fields=['product', 'branch', 'min_stock', 'max_stock']),
                )
                self._schedule_notification(uow, [branch_id])
            return balance, created

        balance, created = self._run(work)
        if created:
            logger.info('Opened stock balance %s', key)
        return balance, created

    def configure_thresholds(
        self, key: BalanceKey, *, min_stock=None, max_stock=None, actor_id: str = '',
    ) -> StockBalance:
        """Set the advisory per-branch min/max levels; both may be cleared with None."""
        min_stock = _optional_quantity(min_stock, 'min_stock')
        max_stock = _optional_quantity(max_stock, 'max_stock')
        self._check_thresholds(min_stock, max_stock)

        def work(uow):
            balance = uow.balances.lock(key)
            if balance is None:
                raise ResourceNotFoundError(detail=self._missing_detail(key))
            old_values = AuditService.snapshot(balance, fields=['min_stock', 'max_stock'])
            balance = uow.balances.update_settings(balance, min_stock=min_stock, max_stock=max_stock)
            uow.audit(
                actor_id=actor_id,
                action=AUDIT_ACTION_UPDATE,
                model_name='StockBalance',
                object_id=str(balance.pk),
                old_values=old_values,
                new_values=AuditService.snapshot(balance, fields=['min_stock', 'max_stock']),
            )
            self._schedule_notification(uow, [key.branch_id])
            return balance

        return self._run(work)

    def set_active(self, key: BalanceKey, active: bool, *, actor_id: str = '') -> StockBalance:
        """Activate or deactivate a balance. Balances are never deleted."""

        def work(uow):
            balance = uow.balances.lock(key)
            if balance is None:
                raise ResourceNotFoundError(detail=self._missing_detail(key))
            if balance.is_active == active:
                state = 'active' if active else 'inactive'
                raise InvalidStateTransition(detail=f'Stock balance {key} is already {state}.')
            balance = uow.balances.update_settings(balance, is_active=active)
            uow.audit(
                actor_id=actor_id,
                action=AUDIT_ACTION_STATUS_CHANGE,
                model_name='StockBalance',
                object_id=str(balance.pk),
                old_values={'is_active': not active},
                new_values={'is_active': active},
            )
            self._schedule_notification(uow, [key.branch_id])
            return balance

        balance = self._run(work)
        logger.info('Stock balance %s %s', key, 'activated' if active else 'deactivated')
        return balance

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validated(self, item: AdjustInput) -> AdjustInput:
        delta = to_quantity(item.delta, 'delta')
        reason = (item.reason or '').strip()
        if not reason:
            raise BusinessRuleViolation(detail='reason is required.')
        for field, value in (('reason', reason), ('external_reference', item.external_reference), ('actor_id', item.actor_id)):
            if len(value or '') > TEXT_FIELD_MAX_LENGTH:
                raise BusinessRuleViolation(detail=f'{field} must be at most {TEXT_FIELD_MAX_LENGTH} characters.')
        if delta is item.delta and reason == item.reason:
            return item
        return AdjustInput(
            key=item.key,
            delta=delta,
            reason=reason,
            notes=item.notes,
            external_reference=item.external_reference,
            actor_id=item.actor_id,
        )

    def _apply(self, uow: UnitOfWork, item: AdjustInput) -> AdjustmentResult:
        balance = uow.balances.lock(item.key)
        if balance is None:
            raise ResourceNotFoundError(detail=self._missing_detail(item.key))
        product = self.catalog.get_product(item.key.product_id)
        if product is None:
            raise ResourceNotFoundError(detail=f'Product {item.key.product_id} not found.')
        if not product.tracking_enabled:
            raise TrackingDisabledError(detail=f'Product {product.name} does not track stock.')

        previous = balance.quantity
        resulting = previous + item.delta
        if resulting < 0:
            raise NegativeStockError(available=previous, delta=item.delta)
        if resulting >= QUANTITY_LIMIT:
            raise BusinessRuleViolation(
                detail=f'Resulting stock {resulting} for {item.key} exceeds the storable maximum.',
            )

        now = self.clock()
        restocked_at = now if item.delta > 0 else balance.last_restocked_at
        balance = uow.balances.compare_and_set(balance, quantity=resulting, last_restocked_at=restocked_at)
        # version counts quantity writes, so it is also the chain position.
        movement = uow.ledger.append(
            balance,
            sequence=balance.version,
            delta=item.delta,
            previous_quantity=previous,
            resulting_quantity=resulting,
            reason=item.reason,
            notes=item.notes,
            external_reference=item.external_reference,
            actor_id=item.actor_id,
            created_at=now,
        )
        logger.info(
            'Stock %s %s: %s -> %s (%s)',
            item.key, f'{item.delta:+}', previous, resulting, item.reason,
        )
        return AdjustmentResult(balance=balance, movement=movement)

    def _run(self, work: Callable[[UnitOfWork], T]) -> T:
        """Run ``work`` in a fresh unit of work, retrying on write conflicts."""
        attempt = 0
        while True:
            attempt += 1
            try:
                with translate_storage_errors():
                    with self.uow_factory() as uow:
                        return work(uow)
            except StorageConflictError:
                if attempt > self.conflict_retries:
                    logger.warning('Stock write conflict persisted after %d attempts.', attempt)
                    raise
                logger.warning('Stock write conflict on attempt %d; retrying.', attempt)

    def _schedule_notification(self, uow: UnitOfWork, branch_ids) -> None:
        for branch_id in dict.fromkeys(branch_ids):
            uow.on_commit(partial(self.notify, branch_id))

    @staticmethod
    def _check_thresholds(min_stock: Decimal | None, max_stock: Decimal | None) -> None:
        if min_stock is not None and max_stock is not None and min_stock > max_stock:
            raise BusinessRuleViolation(detail='min_stock cannot exceed max_stock.')

    @staticmethod
    def _missing_detail(key: BalanceKey) -> str:
        return f'No stock balance for product {key.product_id} at branch {key.branch_id}.'
