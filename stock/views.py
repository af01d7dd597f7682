"""
Stock — Views

DRF ViewSets for branch stock: balance listing and adjustment actions,
movement history, and per-branch summary / alert / status listings.
Every write goes through StockService; every projection through
StockQueryService.

@file stock/views.py
"""

from django.core.cache import cache
from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from catalog.models import Branch
from core.constants import STOCK_ALERTS_CACHE_KEY, STOCK_SUMMARY_CACHE_KEY, STOCK_VIEW_CACHE_TIMEOUT
from core.pagination import LedgerChainPagination

from .filters import MovementFilterSet
from .models import BalanceKey, StockBalance, StockMovement, StockStatus
from .permissions import CanAdjustStock, CanConfigureStock
from .queries import StockQueryService
from .serializers import (
    AdjustmentResultSerializer,
    AdjustStockSerializer,
    BranchStockItemSerializer,
    BranchStockSummarySerializer,
    BulkAdjustSerializer,
    InitialStockSerializer,
    LedgerCheckSerializer,
    LowStockAlertSerializer,
    OpenBalanceSerializer,
    StockBalanceReadSerializer,
    StockMovementReadSerializer,
    ThresholdsSerializer,
)
from .services import StockService, ledger_setting


def get_stock_service() -> StockService:
    return StockService()


def get_query_service() -> StockQueryService:
    return StockQueryService()


def _actor_id(request) -> str:
    return str(request.user.pk) if request.user and request.user.is_authenticated else ''


def _cached(cache_key: str, build):
    data = cache.get(cache_key)
    if data is None:
        data = build()
        cache.set(cache_key, data, ledger_setting('VIEW_CACHE_TIMEOUT', STOCK_VIEW_CACHE_TIMEOUT))
    return data


class StockBalanceViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Balances: list, retrieve, movement chain, ledger check.
    Writes: adjust, bulk-adjust, initial-stock, open (stock.adjust_stock);
    thresholds, activate, deactivate (stock.configure_stock).
    """

    permission_classes = [IsAuthenticated, CanAdjustStock]
    serializer_class = StockBalanceReadSerializer
    filterset_fields = ['branch', 'product', 'is_active']
    search_fields = ['product__name', 'product__sku']
    ordering_fields = ['quantity', 'updated_at', 'last_restocked_at']
    ordering = ['branch__name', 'product__name']

    def get_queryset(self):
        return StockBalance.objects.select_related('product', 'branch')

    def _result_response(self, result, status_code=status.HTTP_200_OK):
        return Response(
            AdjustmentResultSerializer(result, context={'request': self.request}).data,
            status=status_code,
        )

    def _balance_response(self, balance):
        balance = self.get_queryset().get(pk=balance.pk)
        return Response(StockBalanceReadSerializer(balance, context={'request': self.request}).data)

    @action(detail=False, methods=['post'], url_path='adjust')
    def adjust(self, request):
        ser = AdjustStockSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = get_stock_service().adjust(ser.to_input(_actor_id(request)))
        return self._result_response(result, status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='bulk-adjust')
    def bulk_adjust(self, request):
        ser = BulkAdjustSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        results = get_stock_service().adjust_many(ser.to_inputs(_actor_id(request)))
        return Response(
            AdjustmentResultSerializer(results, many=True, context={'request': request}).data,
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=['post'], url_path='initial-stock')
    def initial_stock(self, request):
        ser = InitialStockSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        result = get_stock_service().set_initial_stock(
            BalanceKey(data['product'], data['branch']),
            data['quantity'],
            actor_id=_actor_id(request),
        )
        return self._result_response(result, status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='open')
    def open(self, request):
        ser = OpenBalanceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        balance, created = get_stock_service().open_balance(
            data['product'], data['branch'],
            min_stock=data['min_stock'], max_stock=data['max_stock'],
            actor_id=_actor_id(request),
        )
        response = self._balance_response(balance)
        response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return response

    @action(detail=True, methods=['get'], url_path='movements')
    def movements(self, request, pk=None):
        balance = self.get_object()
        chain = get_query_service().movement_chain(balance.key)
        paginator = LedgerChainPagination()
        page = paginator.paginate_queryset(chain, request, view=self)
        ser = StockMovementReadSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(ser.data)

    @action(detail=True, methods=['get'], url_path='verify')
    def verify(self, request, pk=None):
        balance = self.get_object()
        check = get_query_service().verify_ledger(balance.key)
        return Response(LedgerCheckSerializer(check).data)

    @action(
        detail=True,
        methods=['post'],
        url_path='thresholds',
        permission_classes=[IsAuthenticated, CanConfigureStock],
    )
    def thresholds(self, request, pk=None):
        balance = self.get_object()
        ser = ThresholdsSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        updated = get_stock_service().configure_thresholds(
            balance.key,
            min_stock=ser.validated_data['min_stock'],
            max_stock=ser.validated_data['max_stock'],
            actor_id=_actor_id(request),
        )
        return self._balance_response(updated)

    @action(
        detail=True,
        methods=['post'],
        url_path='activate',
        permission_classes=[IsAuthenticated, CanConfigureStock],
    )
    def activate(self, request, pk=None):
        balance = self.get_object()
        updated = get_stock_service().set_active(balance.key, True, actor_id=_actor_id(request))
        return self._balance_response(updated)

    @action(
        detail=True,
        methods=['post'],
        url_path='deactivate',
        permission_classes=[IsAuthenticated, CanConfigureStock],
    )
    def deactivate(self, request, pk=None):
        balance = self.get_object()
        updated = get_stock_service().set_active(balance.key, False, actor_id=_actor_id(request))
        return self._balance_response(updated)


class StockMovementViewSet(viewsets.GenericViewSet):
    """
    Movement history across balances, newest first, capped at one window.
    Query params: product, branch, reason (substring), start, end (ISO 8601).
    """

    permission_classes = [IsAuthenticated]
    serializer_class = StockMovementReadSerializer
    queryset = StockMovement.objects.none()
    pagination_class = None

    def list(self, request):
        filterset = MovementFilterSet(data=request.query_params, queryset=StockMovement.objects.none())
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)
        queries = get_query_service()
        movements = queries.list_movements(filterset.to_query())
        ser = StockMovementReadSerializer(movements, many=True, context={'request': request})
        return Response({'results': ser.data, 'count': len(ser.data), 'limit': queries.page_size})


class BranchStockViewSet(viewsets.GenericViewSet):
    """Per-branch projections: summary, low-stock alerts, balances by status."""

    permission_classes = [IsAuthenticated]
    queryset = Branch.objects.all()
    lookup_value_regex = '[0-9a-fA-F-]{32,36}'
    pagination_class = None

    @action(detail=True, methods=['get'], url_path='summary')
    def summary(self, request, pk=None):
        branch = get_object_or_404(Branch, pk=pk)
        return Response(_cached(
            STOCK_SUMMARY_CACHE_KEY.format(branch_id=branch.pk),
            lambda: BranchStockSummarySerializer(get_query_service().branch_stock_summary(branch.pk)).data,
        ))

    @action(detail=True, methods=['get'], url_path='alerts')
    def alerts(self, request, pk=None):
        branch = get_object_or_404(Branch, pk=pk)
        data = _cached(
            STOCK_ALERTS_CACHE_KEY.format(branch_id=branch.pk),
            lambda: LowStockAlertSerializer(get_query_service().low_stock_alerts(branch.pk), many=True).data,
        )
        return Response({'results': data, 'count': len(data)})

    @action(detail=True, methods=['get'], url_path='balances')
    def balances(self, request, pk=None):
        branch = get_object_or_404(Branch, pk=pk)
        stock_status = request.query_params.get('status') or None
        if stock_status is not None and stock_status not in StockStatus.values:
            raise ValidationError({'status': [f'Must be one of: {", ".join(StockStatus.values)}.']})
        include_inactive = request.query_params.get('include_inactive') in ('1', 'true', 'True')
        items = get_query_service().list_branch_stock(
            branch.pk, status=stock_status, include_inactive=include_inactive,
        )
        data = BranchStockItemSerializer(items, many=True).data
        return Response({'results': data, 'count': len(data)})
