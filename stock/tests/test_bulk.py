"""
Tests — StockService.adjust_many: all-or-nothing batches, failing item
identification, input ordering and per-branch notification.

@file stock/tests/test_bulk.py
"""

from decimal import Decimal

import pytest

from core.exceptions import BatchAbortedError, NegativeStockError, TrackingDisabledError
from stock.services import AdjustInput


class TestAdjustMany:

    def test_batch_aborts_without_partial_application(self, memory_service, memory_backend, open_balance):
        keys = [open_balance(f'Item-{n}') for n in range(5)]
        for key in keys:
            memory_service.adjust(AdjustInput(key, Decimal('2'), 'delivery'))
        before = {key: memory_backend.balances.get(key).quantity for key in keys}
        chain_lengths = {key: len(memory_backend.ledger.chain(key)) for key in keys}

        items = [
            AdjustInput(keys[0], Decimal('-1'), 'sale'),
            AdjustInput(keys[1], Decimal('-1'), 'sale'),
            AdjustInput(keys[2], Decimal('-3'), 'sale'),
            AdjustInput(keys[3], Decimal('-1'), 'sale'),
            AdjustInput(keys[4], Decimal('-1'), 'sale'),
        ]
        with pytest.raises(BatchAbortedError) as exc_info:
            memory_service.adjust_many(items)

        error = exc_info.value
        assert error.index == 2
        assert error.key == keys[2]
        assert isinstance(error.cause, NegativeStockError)
        assert error.detail['reason_code'] == 'NEGATIVE_STOCK_REJECTED'
        for key in keys:
            assert memory_backend.balances.get(key).quantity == before[key]
            assert len(memory_backend.ledger.chain(key)) == chain_lengths[key]

    def test_results_follow_input_order(self, memory_service, open_balance):
        sugar = open_balance('Sugar')
        flour = open_balance('Flour')

        results = memory_service.adjust_many([
            AdjustInput(sugar, Decimal('4'), 'delivery'),
            AdjustInput(flour, Decimal('6'), 'delivery'),
            AdjustInput(sugar, Decimal('-1'), 'sale'),
        ])

        assert [r.balance.key for r in results] == [sugar, flour, sugar]
        assert [r.movement.resulting_quantity for r in results] == [Decimal('4'), Decimal('6'), Decimal('3')]

    def test_same_key_items_chain_within_the_batch(self, memory_service, memory_backend, open_balance):
        key = open_balance()
        memory_service.adjust_many([
            AdjustInput(key, Decimal('10'), 'delivery'),
            AdjustInput(key, Decimal('-4'), 'sale'),
            AdjustInput(key, Decimal('-6'), 'sale'),
        ])
        chain = memory_backend.ledger.chain(key)
        assert [m.sequence for m in chain] == [1, 2, 3]
        assert [m.previous_quantity for m in chain] == [Decimal('0'), Decimal('10'), Decimal('6')]
        assert memory_backend.balances.get(key).quantity == Decimal('0')

    def test_later_item_can_depend_on_earlier_restock(self, memory_service, open_balance):
        key = open_balance()
        results = memory_service.adjust_many([
            AdjustInput(key, Decimal('3'), 'delivery'),
            AdjustInput(key, Decimal('-3'), 'sale'),
        ])
        assert results[-1].balance.quantity == Decimal('0')

    def test_untracked_item_aborts_the_batch(self, memory_service, memory_backend, open_balance):
        flour = open_balance('Flour')
        water = open_balance('Water', tracking_enabled=False)

        with pytest.raises(BatchAbortedError) as exc_info:
            memory_service.adjust_many([
                AdjustInput(flour, Decimal('1'), 'delivery'),
                AdjustInput(water, Decimal('1'), 'delivery'),
            ])
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, TrackingDisabledError)
        assert memory_backend.balances.get(flour).quantity == Decimal('0')

    def test_invalid_input_is_reported_by_index(self, memory_service, memory_backend, open_balance):
        key = open_balance()
        with pytest.raises(BatchAbortedError) as exc_info:
            memory_service.adjust_many([
                AdjustInput(key, Decimal('1'), 'delivery'),
                AdjustInput(key, Decimal('1'), ''),
            ])
        assert exc_info.value.index == 1
        assert memory_backend.ledger.chain(key) == []

    def test_empty_batch(self, memory_service, notified):
        assert memory_service.adjust_many([]) == []
        assert notified == []

    def test_one_notification_per_branch(self, memory_service, memory_backend, open_balance, notified, branch_id):
        other_branch = memory_backend.catalog.add_branch()
        a = open_balance('A')
        b = open_balance('B')
        c = open_balance('C', branch=other_branch)

        memory_service.adjust_many([
            AdjustInput(a, Decimal('1'), 'delivery'),
            AdjustInput(c, Decimal('1'), 'delivery'),
            AdjustInput(b, Decimal('1'), 'delivery'),
        ])
        assert notified == [branch_id, other_branch]

    def test_aborted_batch_sends_no_notification(self, memory_service, open_balance, notified):
        key = open_balance()
        with pytest.raises(BatchAbortedError):
            memory_service.adjust_many([AdjustInput(key, Decimal('-1'), 'sale')])
        assert notified == []
