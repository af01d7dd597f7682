"""
Stock — Filters

Query-string parsing for the movement history endpoint. The filter set
only validates parameters; the search itself runs in StockQueryService.

@file stock/filters.py
"""

import django_filters

from .models import BalanceKey, StockMovement
from .stores import MovementQuery


class MovementFilterSet(django_filters.FilterSet):
    product = django_filters.UUIDFilter(field_name='balance__product_id')
    branch = django_filters.UUIDFilter(field_name='balance__branch_id')
    reason = django_filters.CharFilter(field_name='reason', lookup_expr='icontains')
    start = django_filters.IsoDateTimeFilter(field_name='created_at', lookup_expr='gte')
    end = django_filters.IsoDateTimeFilter(field_name='created_at', lookup_expr='lte')

    class Meta:
        model = StockMovement
        fields = ['product', 'branch', 'reason', 'start', 'end']

    def to_query(self) -> MovementQuery:
        """Build a MovementQuery from validated parameters; call is_valid() first."""
        data = self.form.cleaned_data
        product_id = data.get('product')
        branch_id = data.get('branch')
        if product_id and branch_id:
            return MovementQuery(
                key=BalanceKey(product_id, branch_id),
                reason_contains=data.get('reason') or '',
                start=data.get('start'),
                end=data.get('end'),
            )
        return MovementQuery(
            product_id=product_id,
            branch_id=branch_id,
            reason_contains=data.get('reason') or '',
            start=data.get('start'),
            end=data.get('end'),
        )
