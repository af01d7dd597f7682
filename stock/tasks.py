"""
Stock — Celery Tasks

Periodic ledger verification. Scheduled nightly through
CELERY_BEAT_SCHEDULE; can also be queued on demand for one branch.

@file stock/tasks.py
"""

import logging

from celery import shared_task

logger = logging.getLogger('branchstock')


@shared_task(name='stock.verify_ledgers')
def verify_ledgers_task(branch_id=None):
    """
    Verify every balance's movement chain (optionally one branch only).
    Returns a JSON-serialisable report.
    """
    from .queries import StockQueryService

    checks = StockQueryService().verify_all(branch_id=branch_id)
    inconsistent = [str(check.key) for check in checks if not check.ok]
    logger.info(
        'Stock ledger verification: %d balances checked, %d inconsistent.',
        len(checks), len(inconsistent),
    )
    return {'checked': len(checks), 'inconsistent': inconsistent}
