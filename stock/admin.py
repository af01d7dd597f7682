"""
Stock — Django Admin Configuration

Read-only views of balances and their movement ledger. Quantities only
change through StockService, so neither model is editable here.

@file stock/admin.py
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from .models import StockBalance, StockMovement


class StockMovementInline(admin.TabularInline):
    model = StockMovement
    fields = ('sequence', 'delta', 'previous_quantity', 'resulting_quantity', 'reason', 'actor_id', 'created_at')
    readonly_fields = fields
    ordering = ('-sequence',)
    extra = 0
    max_num = 0
    show_change_link = True

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockBalance)
class StockBalanceAdmin(admin.ModelAdmin):
    list_display = (
        'product', 'branch', 'quantity', 'min_stock', 'max_stock',
        'last_restocked_at', 'is_active', 'version',
    )
    list_filter = ('branch', 'is_active')
    search_fields = ('product__name', 'product__sku', 'branch__name')
    readonly_fields = (
        'id', 'product', 'branch', 'quantity', 'min_stock', 'max_stock',
        'last_restocked_at', 'is_active', 'version', 'created_at', 'updated_at',
    )
    list_select_related = ('product', 'branch')
    list_per_page = 50
    ordering = ('branch__name', 'product__name')
    inlines = [StockMovementInline]

    fieldsets = (
        (_('Balance'), {
            'fields': ('id', 'product', 'branch', 'quantity', 'version'),
        }),
        (_('Thresholds'), {
            'fields': ('min_stock', 'max_stock', 'is_active'),
        }),
        (_('Audit'), {
            'fields': ('last_restocked_at', 'created_at', 'updated_at'),
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = (
        'created_at', 'balance', 'sequence', 'delta',
        'previous_quantity', 'resulting_quantity', 'reason', 'actor_id',
    )
    list_filter = ('reason', 'created_at', 'balance__branch')
    search_fields = ('reason', 'external_reference', 'balance__product__name')
    readonly_fields = (
        'id', 'balance', 'sequence', 'delta', 'previous_quantity', 'resulting_quantity',
        'reason', 'notes', 'external_reference', 'actor_id', 'created_at',
    )
    list_select_related = ('balance', 'balance__product', 'balance__branch')
    show_full_result_count = False
    list_per_page = 50
    date_hierarchy = 'created_at'
    ordering = ('-created_at', '-sequence')

    fieldsets = (
        (_('Movement'), {
            'fields': ('id', 'balance', 'sequence', 'delta', 'previous_quantity', 'resulting_quantity'),
        }),
        (_('Reference'), {
            'fields': ('reason', 'notes', 'external_reference'),
        }),
        (_('Audit'), {
            'fields': ('actor_id', 'created_at'),
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False  # insert-only

    def has_delete_permission(self, request, obj=None):
        return False  # insert-only
