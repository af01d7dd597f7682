"""
Tests — StockService and StockQueryService wired to the database:
Django stores, unit of work rollback, storage error translation, cache
invalidation on commit and branch valuation from catalog prices.

@file stock/tests/test_django_backend.py
"""

from decimal import Decimal

import pytest
from django.core.cache import cache
from django.db import DataError, IntegrityError, InterfaceError, OperationalError

from core.constants import STOCK_ALERTS_CACHE_KEY, STOCK_SUMMARY_CACHE_KEY
from core.exceptions import (
    BatchAbortedError,
    BusinessRuleViolation,
    NegativeStockError,
    StorageConflictError,
    StorageRejectedError,
    StorageUnavailableError,
    TrackingDisabledError,
)
from core.models import AuditLog
from stock.models import StockBalance, StockMovement
from stock.queries import StockQueryService
from stock.services import AdjustInput, StockService
from stock.stores import DjangoUnitOfWork, MovementQuery, translate_storage_errors
from tests.factories import BranchFactory, ProductFactory, ProductPriceFactory, StockBalanceFactory


pytestmark = pytest.mark.django_db


class DriverError(Exception):
    """Stands in for a driver exception carrying a SQLSTATE."""

    def __init__(self, sqlstate):
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


def _adjust(key, delta, reason='sale', **kwargs):
    return StockService().adjust(AdjustInput(key=key, delta=Decimal(delta), reason=reason, **kwargs))


class TestDjangoAdjust:

    def test_scenario(self):
        balance = StockBalanceFactory()

        _adjust(balance.key, '5.5', reason='initial stock')
        _adjust(balance.key, '-2')
        with pytest.raises(NegativeStockError):
            _adjust(balance.key, '-10')

        balance.refresh_from_db()
        assert balance.quantity == Decimal('3.5')
        assert balance.version == 2
        movements = list(StockMovement.objects.filter(balance=balance).order_by('sequence'))
        assert [m.sequence for m in movements] == [1, 2]
        assert movements[0].previous_quantity == Decimal('0')
        assert movements[0].resulting_quantity == Decimal('5.5')
        assert movements[1].previous_quantity == movements[0].resulting_quantity

    def test_untracked_product(self):
        balance = StockBalanceFactory(product=ProductFactory(track_stock=False))
        with pytest.raises(TrackingDisabledError):
            _adjust(balance.key, '1')
        assert not StockMovement.objects.exists()

    def test_bulk_rolls_back_earlier_items(self):
        balances = [StockBalanceFactory() for _ in range(3)]
        for balance in balances:
            _adjust(balance.key, '2', reason='delivery')

        with pytest.raises(BatchAbortedError) as exc_info:
            StockService().adjust_many([
                AdjustInput(balances[0].key, Decimal('-1'), 'sale'),
                AdjustInput(balances[1].key, Decimal('-1'), 'sale'),
                AdjustInput(balances[2].key, Decimal('-5'), 'sale'),
            ])

        assert exc_info.value.index == 2
        for balance in balances:
            balance.refresh_from_db()
            assert balance.quantity == Decimal('2')
        assert StockMovement.objects.count() == 3

    def test_quantity_stops_at_column_capacity(self):
        balance = StockBalanceFactory()
        StockService().set_initial_stock(balance.key, Decimal('9999999999.99'))

        with pytest.raises(BusinessRuleViolation):
            _adjust(balance.key, '0.01', reason='delivery')

        balance.refresh_from_db()
        assert balance.quantity == Decimal('9999999999.99')
        assert StockMovement.objects.filter(balance=balance).count() == 1
        _adjust(balance.key, '-0.99')
        balance.refresh_from_db()
        assert balance.quantity == Decimal('9999999999.00')

    def test_overfull_item_aborts_batch(self):
        full = StockBalanceFactory()
        StockService().set_initial_stock(full.key, Decimal('9999999999'))
        other = StockBalanceFactory()

        with pytest.raises(BatchAbortedError) as exc_info:
            StockService().adjust_many([
                AdjustInput(other.key, Decimal('1'), 'delivery'),
                AdjustInput(full.key, Decimal('1'), 'delivery'),
            ])

        assert exc_info.value.index == 1
        other.refresh_from_db()
        assert other.quantity == Decimal('0')

    def test_reference_longer_than_column_is_rejected(self):
        balance = StockBalanceFactory()
        with pytest.raises(BusinessRuleViolation):
            _adjust(balance.key, '1', reason='delivery', external_reference='x' * 101)
        with pytest.raises(BusinessRuleViolation):
            _adjust(balance.key, '1', reason='delivery', actor_id='a' * 101)
        assert not StockMovement.objects.exists()
        _adjust(balance.key, '1', reason='delivery', external_reference='x' * 100)

    def test_verify_ledger_after_adjustments(self):
        balance = StockBalanceFactory()
        _adjust(balance.key, '4', reason='delivery')
        _adjust(balance.key, '-1.25')
        check = StockQueryService().verify_ledger(balance.key)
        assert check.ok, check.problems


class TestDjangoStores:

    def test_stale_version_conflicts(self):
        balance = StockBalanceFactory()
        stale = StockBalance.objects.get(pk=balance.pk)
        _adjust(balance.key, '1', reason='delivery')

        with pytest.raises(StorageConflictError):
            with DjangoUnitOfWork() as uow:
                uow.balances.compare_and_set(stale, quantity=Decimal('9'), last_restocked_at=None)

    def test_unit_of_work_rolls_back_both_stores(self):
        balance = StockBalanceFactory()
        with pytest.raises(RuntimeError):
            with DjangoUnitOfWork() as uow:
                locked = uow.balances.lock(balance.key)
                uow.balances.compare_and_set(locked, quantity=Decimal('7'), last_restocked_at=None)
                uow.ledger.append(
                    locked, sequence=1, delta=Decimal('7'), previous_quantity=Decimal('0'),
                    resulting_quantity=Decimal('7'), reason='delivery', created_at=locked.updated_at,
                )
                raise RuntimeError('abort')

        balance.refresh_from_db()
        assert balance.quantity == Decimal('0')
        assert not StockMovement.objects.exists()

    def test_duplicate_sequence_is_a_conflict(self):
        balance = StockBalanceFactory()
        _adjust(balance.key, '1', reason='delivery')
        with pytest.raises(StorageConflictError):
            with translate_storage_errors(), DjangoUnitOfWork() as uow:
                uow.ledger.append(
                    balance, sequence=1, delta=Decimal('1'), previous_quantity=Decimal('1'),
                    resulting_quantity=Decimal('2'), reason='replay', created_at=balance.created_at,
                )

    def test_search_filters(self):
        flour = StockBalanceFactory(product=ProductFactory(name='Flour'))
        sugar = StockBalanceFactory(product=ProductFactory(name='Sugar'), branch=flour.branch)
        _adjust(flour.key, '3', reason='Delivery')
        _adjust(sugar.key, '3', reason='delivery')
        _adjust(sugar.key, '-1', reason='sale')

        queries = StockQueryService()
        assert len(queries.list_movements(MovementQuery(branch_id=flour.branch_id))) == 3
        assert len(queries.list_movements(MovementQuery(key=sugar.key))) == 2
        assert len(queries.list_movements(MovementQuery(reason_contains='deliv'))) == 2
        newest = queries.list_movements()[0]
        assert newest.reason == 'sale'


class TestStorageErrorTranslation:

    def test_integrity_error(self):
        with pytest.raises(StorageConflictError):
            with translate_storage_errors():
                raise IntegrityError('duplicate key')

    @pytest.mark.parametrize('sqlstate', ['40001', '40P01'])
    def test_serialization_failure_and_deadlock(self, sqlstate):
        with pytest.raises(StorageConflictError):
            with translate_storage_errors():
                raise OperationalError('could not serialize access') from DriverError(sqlstate)

    def test_other_sqlstate_is_unavailable(self):
        with pytest.raises(StorageUnavailableError):
            with translate_storage_errors():
                raise OperationalError('too many connections') from DriverError('53300')

    def test_value_out_of_range(self):
        with pytest.raises(StorageRejectedError) as exc_info:
            with translate_storage_errors():
                raise DataError('numeric field overflow')
        assert exc_info.value.default_code == 'STORAGE_REJECTED'

    def test_lost_connection(self):
        with pytest.raises(StorageUnavailableError):
            with translate_storage_errors():
                raise OperationalError('server closed the connection unexpectedly')
        with pytest.raises(StorageUnavailableError):
            with translate_storage_errors():
                raise InterfaceError('connection already closed')


class TestBalanceConfigurationAudit:

    def test_open_balance_writes_audit_log(self, stock_manager):
        product = ProductFactory()
        branch = BranchFactory()
        balance, created = StockService().open_balance(product.pk, branch.pk, actor_id=str(stock_manager.pk))

        assert created
        log = AuditLog.objects.get(object_id=str(balance.pk))
        assert log.action == 'CREATE'
        assert log.actor_id == str(stock_manager.pk)
        assert log.new_values['product'] == str(product.pk)

    def test_thresholds_persist(self):
        balance = StockBalanceFactory()
        StockService().configure_thresholds(balance.key, min_stock='2.5', max_stock='40')
        balance.refresh_from_db()
        assert balance.min_stock == Decimal('2.5')
        assert balance.max_stock == Decimal('40')
        assert AuditLog.objects.filter(action='UPDATE', object_id=str(balance.pk)).exists()


class TestCacheInvalidation:

    def test_commit_clears_branch_views(self, django_capture_on_commit_callbacks):
        balance = StockBalanceFactory()
        summary_key = STOCK_SUMMARY_CACHE_KEY.format(branch_id=balance.branch_id)
        alerts_key = STOCK_ALERTS_CACHE_KEY.format(branch_id=balance.branch_id)
        cache.set(summary_key, {'stale': True})
        cache.set(alerts_key, ['stale'])

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            _adjust(balance.key, '1', reason='delivery')

        assert len(callbacks) == 1
        assert cache.get(summary_key) is None
        assert cache.get(alerts_key) is None

    def test_rejected_adjustment_keeps_cache(self, django_capture_on_commit_callbacks):
        balance = StockBalanceFactory()
        summary_key = STOCK_SUMMARY_CACHE_KEY.format(branch_id=balance.branch_id)
        cache.set(summary_key, {'cached': True})

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(NegativeStockError):
                _adjust(balance.key, '-1')

        assert callbacks == []
        assert cache.get(summary_key) == {'cached': True}

    def test_catalog_edits_clear_branch_views(self, django_capture_on_commit_callbacks):
        balance = StockBalanceFactory()
        elsewhere = StockBalanceFactory(product=balance.product)
        keys = [
            STOCK_SUMMARY_CACHE_KEY.format(branch_id=balance.branch_id),
            STOCK_ALERTS_CACHE_KEY.format(branch_id=elsewhere.branch_id),
        ]
        cache.set_many({key: 'stale' for key in keys})

        with django_capture_on_commit_callbacks(execute=True):
            balance.product.min_stock_alert = Decimal('5')
            balance.product.save()

        assert cache.get_many(keys) == {}

    def test_price_change_clears_branch_summary(self, django_capture_on_commit_callbacks):
        balance = StockBalanceFactory()
        summary_key = STOCK_SUMMARY_CACHE_KEY.format(branch_id=balance.branch_id)
        cache.set(summary_key, {'total_stock_value': '0'})

        with django_capture_on_commit_callbacks(execute=True):
            ProductPriceFactory(product=balance.product, branch=balance.branch, price=Decimal('4'))

        assert cache.get(summary_key) is None


class TestDjangoBranchSummary:

    def test_valuation_uses_dine_in_prices(self):
        branch = BranchFactory()
        burger = StockBalanceFactory(branch=branch, product=ProductFactory(name='Burger'))
        water = StockBalanceFactory(branch=branch, product=ProductFactory(name='Water', track_stock=False))
        ProductPriceFactory(product=burger.product, branch=branch, price=Decimal('100'))
        ProductPriceFactory(product=water.product, branch=branch, price=Decimal('2'))
        StockService().set_initial_stock(burger.key, Decimal('4'))

        summary = StockQueryService().branch_stock_summary(branch.pk)

        assert summary.total_products == 2
        assert summary.total_stock_value == Decimal('400')

    def test_low_stock_alerts_use_product_threshold(self):
        branch = BranchFactory()
        for name, quantity in [('Nine', '9'), ('One', '1'), ('Five', '5')]:
            balance = StockBalanceFactory(branch=branch, product=ProductFactory(name=name, min_stock_alert=Decimal('10')))
            StockService().set_initial_stock(balance.key, Decimal(quantity))

        alerts = StockQueryService().low_stock_alerts(branch.pk)
        assert [alert.product.name for alert in alerts] == ['One', 'Five', 'Nine']
