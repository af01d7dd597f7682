"""
Catalog — Django Admin Configuration

Branches, products and per-branch price lists. Turning off track_stock
on a product makes its balances report ALWAYS_AVAILABLE and rejects
further adjustments.

@file catalog/admin.py
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from .models import Branch, Product, ProductPrice


class ProductPriceInline(admin.TabularInline):
    model = ProductPrice
    fields = ('branch', 'price_type', 'price')
    autocomplete_fields = ('branch',)
    extra = 0


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ('name', 'address', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'address')
    readonly_fields = ('id', 'created_at', 'updated_at')


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('name', 'sku', 'unit_type', 'track_stock', 'min_stock_alert', 'is_active')
    list_filter = ('track_stock', 'unit_type', 'is_active')
    search_fields = ('name', 'sku')
    readonly_fields = ('id', 'created_at', 'updated_at')
    inlines = [ProductPriceInline]

    fieldsets = (
        (None, {
            'fields': ('id', 'name', 'sku', 'unit_type', 'is_active'),
        }),
        (_('Stock'), {
            'fields': ('track_stock', 'min_stock_alert'),
        }),
        (_('Audit'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )
