"""
Tests — nightly ledger verification (Celery task and management command)
and the stock_view_changed signal.

@file stock/tests/test_tasks.py
"""

from decimal import Decimal
from io import StringIO
from unittest import mock

import pytest
from django.core.management import CommandError, call_command

from stock.models import StockBalance
from stock.services import AdjustInput, StockService
from stock.signals import notify_stock_view_changed, stock_view_changed
from stock.tasks import verify_ledgers_task
from tests.factories import BranchFactory, StockBalanceFactory


def _stocked_balance(**kwargs):
    balance = StockBalanceFactory(**kwargs)
    StockService().adjust(AdjustInput(balance.key, Decimal('5'), 'delivery'))
    return balance


@pytest.mark.django_db
class TestVerifyLedgersTask:

    def test_reports_consistent_ledgers(self):
        _stocked_balance()
        _stocked_balance()
        assert verify_ledgers_task() == {'checked': 2, 'inconsistent': []}

    def test_reports_drift(self):
        balance = _stocked_balance()
        StockBalance.objects.filter(pk=balance.pk).update(quantity=Decimal('7'))

        report = verify_ledgers_task.delay().get()

        assert report['checked'] == 1
        assert report['inconsistent'] == [str(balance.key)]

    def test_single_branch(self):
        branch = BranchFactory()
        _stocked_balance(branch=branch)
        _stocked_balance()
        assert verify_ledgers_task(branch_id=str(branch.pk))['checked'] == 1


@pytest.mark.django_db
class TestVerifyStockLedgerCommand:

    def test_success(self):
        _stocked_balance()
        out = StringIO()
        call_command('verify_stock_ledger', stdout=out)
        assert '1 stock ledgers verified.' in out.getvalue()

    def test_broken_ledger_fails(self):
        balance = _stocked_balance()
        StockBalance.objects.filter(pk=balance.pk).update(quantity=Decimal('1'), version=3)
        err = StringIO()
        with pytest.raises(CommandError):
            call_command('verify_stock_ledger', stderr=err)
        assert str(balance.key) in err.getvalue()


class TestStockViewChangedSignal:

    def test_receiver_failure_is_logged_not_raised(self):
        def broken_receiver(sender, branch_id, **kwargs):
            raise RuntimeError('boom')

        stock_view_changed.connect(broken_receiver, dispatch_uid='test.broken_receiver')
        try:
            with mock.patch('stock.signals.logger') as logger:
                notify_stock_view_changed('branch-1')
        finally:
            stock_view_changed.disconnect(dispatch_uid='test.broken_receiver')

        logger.error.assert_called_once()
        assert 'branch-1' in logger.error.call_args.args
