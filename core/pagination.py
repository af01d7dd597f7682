"""
Core — Pagination

Standard paginator with configurable page_size and hard max cap, and a
larger-window paginator for walking a balance's movement chain.

@file core/pagination.py
"""

from rest_framework.pagination import PageNumberPagination

from core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, STOCK_MOVEMENT_PAGE_SIZE


class StandardPagination(PageNumberPagination):
    page_size = DEFAULT_PAGE_SIZE
    page_size_query_param = 'page_size'
    max_page_size = MAX_PAGE_SIZE


class LedgerChainPagination(PageNumberPagination):
    """Oldest-first ledger pages; one page holds a full movement window."""
    page_size = STOCK_MOVEMENT_PAGE_SIZE
    page_size_query_param = 'page_size'
    max_page_size = STOCK_MOVEMENT_PAGE_SIZE * 5
