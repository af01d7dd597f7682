"""
Tests — concurrent adjustments on the in-memory backend: no lost updates
on one key, no negative balance under racing sales, and readers never see
a balance ahead of its ledger.

@file stock/tests/test_concurrency.py
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from core.exceptions import NegativeStockError
from stock.services import AdjustInput


class TestConcurrentAdjustments:

    def test_no_lost_updates_on_one_key(self, memory_service, memory_backend, open_balance):
        key = open_balance()

        def restock(_):
            memory_service.adjust(AdjustInput(key, Decimal('0.5'), 'delivery'))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(restock, range(200)))

        assert memory_backend.balances.get(key).quantity == Decimal('100')
        chain = memory_backend.ledger.chain(key)
        assert [m.sequence for m in chain] == list(range(1, 201))
        for earlier, later in zip(chain, chain[1:]):
            assert later.previous_quantity == earlier.resulting_quantity

    def test_racing_sales_never_oversell(self, memory_service, memory_backend, open_balance):
        key = open_balance()
        memory_service.set_initial_stock(key, Decimal('10'))
        outcomes = []
        outcomes_lock = threading.Lock()

        def sell(_):
            try:
                memory_service.adjust(AdjustInput(key, Decimal('-1'), 'sale'))
                result = 'sold'
            except NegativeStockError:
                result = 'rejected'
            with outcomes_lock:
                outcomes.append(result)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(sell, range(25)))

        assert outcomes.count('sold') == 10
        assert outcomes.count('rejected') == 15
        assert memory_backend.balances.get(key).quantity == Decimal('0')
        assert _ledger_tail_matches(memory_backend, key)

    def test_reader_never_sees_balance_ahead_of_ledger(self, memory_service, memory_backend, open_balance):
        key = open_balance()
        stop = threading.Event()
        mismatches = []

        def read():
            while not stop.is_set():
                with memory_backend.state.lock:
                    balance = memory_backend.balances.get(key)
                    chain = memory_backend.ledger.chain(key)
                tail = chain[-1].resulting_quantity if chain else Decimal('0')
                if balance.quantity != tail:
                    mismatches.append((balance.quantity, tail))

        reader = threading.Thread(target=read)
        reader.start()
        try:
            for n in range(100):
                delta = Decimal('3') if n % 2 == 0 else Decimal('-5')
                try:
                    memory_service.adjust(AdjustInput(key, delta, 'mixed'))
                except NegativeStockError:
                    pass
        finally:
            stop.set()
            reader.join()

        assert mismatches == []

    def test_overlapping_batches_complete(self, memory_service, memory_backend, open_balance):
        a = open_balance('A')
        b = open_balance('B')

        def forward(_):
            memory_service.adjust_many([
                AdjustInput(a, Decimal('1'), 'transfer'),
                AdjustInput(b, Decimal('1'), 'transfer'),
            ])

        def backward(_):
            memory_service.adjust_many([
                AdjustInput(b, Decimal('1'), 'transfer'),
                AdjustInput(a, Decimal('1'), 'transfer'),
            ])

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(forward if n % 2 else backward, n) for n in range(40)]
            for future in futures:
                future.result(timeout=30)

        assert memory_backend.balances.get(a).quantity == Decimal('40')
        assert memory_backend.balances.get(b).quantity == Decimal('40')


def _ledger_tail_matches(backend, key) -> bool:
    chain = backend.ledger.chain(key)
    return backend.balances.get(key).quantity == chain[-1].resulting_quantity
