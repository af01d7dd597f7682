"""
Stock — URL Configuration

@file stock/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import BranchStockViewSet, StockBalanceViewSet, StockMovementViewSet

app_name = 'stock'

router = DefaultRouter()
router.register('balances', StockBalanceViewSet, basename='balance')
router.register('movements', StockMovementViewSet, basename='movement')
router.register('branches', BranchStockViewSet, basename='branch')

urlpatterns = [
    path('', include(router.urls)),
]
