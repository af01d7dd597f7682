"""
Stock — Management Command: verify_stock_ledger

Checks that every stock balance equals the tail of its movement chain
and that each chain is gapless. Exits non-zero when a ledger is broken.

Usage::

    python manage.py verify_stock_ledger
    python manage.py verify_stock_ledger --branch <uuid>

@file stock/management/commands/verify_stock_ledger.py
"""

from django.core.management.base import BaseCommand, CommandError

from stock.queries import StockQueryService


class Command(BaseCommand):
    help = 'Verify stock balances against their movement ledgers.'

    def add_arguments(self, parser):
        parser.add_argument('--branch', dest='branch_id', default=None, help='Only check this branch.')

    def handle(self, *args, **options):
        checks = StockQueryService().verify_all(branch_id=options['branch_id'])
        broken = [check for check in checks if not check.ok]
        for check in broken:
            self.stderr.write(f'{check.key}:')
            for problem in check.problems:
                self.stderr.write(f'  - {problem}')
        if broken:
            raise CommandError(f'{len(broken)} of {len(checks)} stock ledgers are inconsistent.')
        self.stdout.write(self.style.SUCCESS(f'{len(checks)} stock ledgers verified.'))
