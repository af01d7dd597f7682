"""
Stock — Permissions

Reads: any authenticated user. Quantity writes need stock.adjust_stock;
thresholds and activation need stock.configure_stock. Superusers pass.

@file stock/permissions.py
"""

from rest_framework.permissions import SAFE_METHODS, BasePermission


class CanAdjustStock(BasePermission):
    """List/retrieve: authenticated. Adjustments: stock.adjust_stock."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        if request.user.is_superuser:
            return True
        return request.user.has_perm('stock.adjust_stock')


class CanConfigureStock(BasePermission):
    """Threshold and activation changes: stock.configure_stock."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True
        return request.user.has_perm('stock.configure_stock')
