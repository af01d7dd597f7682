"""
Core — Shared Constants

@file core/constants.py
"""

# Audit actions (mirrors AuditLog.ActionChoices)
AUDIT_ACTION_CREATE = 'CREATE'
AUDIT_ACTION_UPDATE = 'UPDATE'
AUDIT_ACTION_STATUS_CHANGE = 'STATUS_CHANGE'

# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Stock ledger defaults (overridable through settings.STOCK_LEDGER)
STOCK_MOVEMENT_PAGE_SIZE = 100
STOCK_CONFLICT_RETRIES = 3
STOCK_VALUATION_PRICE_TYPE = 'DINE_IN'
STOCK_VIEW_CACHE_TIMEOUT = 300

# Cached per-branch stock views
STOCK_SUMMARY_CACHE_KEY = 'stock:summary:{branch_id}'
STOCK_ALERTS_CACHE_KEY = 'stock:alerts:{branch_id}'
