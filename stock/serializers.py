"""
Stock — Serializers

Read serializers for balances, movements and the branch projections;
input serializers for adjustments and configuration. Explicit field
lists; no __all__.

@file stock/serializers.py
"""

from rest_framework import serializers

from .models import QUANTITY_DECIMAL_PLACES, QUANTITY_MAX_DIGITS, BalanceKey, StockBalance, StockMovement, StockStatus
from .services import AdjustInput


def quantity_field(**kwargs):
    return serializers.DecimalField(
        max_digits=QUANTITY_MAX_DIGITS, decimal_places=QUANTITY_DECIMAL_PLACES, **kwargs,
    )


class StockBalanceReadSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    branch_name = serializers.CharField(source='branch.name', read_only=True)

    class Meta:
        model = StockBalance
        fields = [
            'id', 'product', 'product_name', 'branch', 'branch_name',
            'quantity', 'min_stock', 'max_stock', 'last_restocked_at',
            'is_active', 'version', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class StockMovementReadSerializer(serializers.ModelSerializer):
    product = serializers.UUIDField(source='balance.product_id', read_only=True)
    branch = serializers.UUIDField(source='balance.branch_id', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'balance', 'product', 'branch', 'sequence',
            'delta', 'previous_quantity', 'resulting_quantity',
            'reason', 'notes', 'external_reference', 'actor_id', 'created_at',
        ]
        read_only_fields = fields


class AdjustmentResultSerializer(serializers.Serializer):
    balance = StockBalanceReadSerializer(read_only=True)
    movement = StockMovementReadSerializer(read_only=True)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class AdjustStockSerializer(serializers.Serializer):
    product = serializers.UUIDField()
    branch = serializers.UUIDField()
    delta = quantity_field()
    reason = serializers.CharField(max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    external_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')

    def to_input(self, actor_id: str = '', data=None) -> AdjustInput:
        data = data if data is not None else self.validated_data
        return AdjustInput(
            key=BalanceKey(data['product'], data['branch']),
            delta=data['delta'],
            reason=data['reason'],
            notes=data.get('notes', ''),
            external_reference=data.get('external_reference', ''),
            actor_id=actor_id,
        )


class BulkAdjustSerializer(serializers.Serializer):
    items = AdjustStockSerializer(many=True, allow_empty=False)

    def to_inputs(self, actor_id: str = '') -> list[AdjustInput]:
        item_serializer = AdjustStockSerializer()
        return [item_serializer.to_input(actor_id, data=item) for item in self.validated_data['items']]


class InitialStockSerializer(serializers.Serializer):
    product = serializers.UUIDField()
    branch = serializers.UUIDField()
    quantity = quantity_field(min_value=0)


class OpenBalanceSerializer(serializers.Serializer):
    product = serializers.UUIDField()
    branch = serializers.UUIDField()
    min_stock = quantity_field(required=False, allow_null=True, min_value=0, default=None)
    max_stock = quantity_field(required=False, allow_null=True, min_value=0, default=None)

    def validate(self, attrs):
        if attrs['min_stock'] is not None and attrs['max_stock'] is not None and attrs['min_stock'] > attrs['max_stock']:
            raise serializers.ValidationError({'min_stock': 'Minimum stock cannot exceed maximum stock.'})
        return attrs


class ThresholdsSerializer(serializers.Serializer):
    min_stock = quantity_field(required=False, allow_null=True, min_value=0, default=None)
    max_stock = quantity_field(required=False, allow_null=True, min_value=0, default=None)

    def validate(self, attrs):
        if attrs['min_stock'] is not None and attrs['max_stock'] is not None and attrs['min_stock'] > attrs['max_stock']:
            raise serializers.ValidationError({'min_stock': 'Minimum stock cannot exceed maximum stock.'})
        return attrs


# ---------------------------------------------------------------------------
# Branch projections
# ---------------------------------------------------------------------------

class BranchStockItemSerializer(serializers.Serializer):
    balance_id = serializers.UUIDField(source='balance.id')
    product_id = serializers.UUIDField(source='balance.product_id')
    product_name = serializers.CharField(source='product.name', allow_null=True)
    unit_type = serializers.CharField(source='product.unit_type', allow_null=True)
    tracking_enabled = serializers.BooleanField(source='product.tracking_enabled', allow_null=True)
    quantity = quantity_field(source='balance.quantity')
    min_stock = quantity_field(source='balance.min_stock', allow_null=True)
    max_stock = quantity_field(source='balance.max_stock', allow_null=True)
    is_active = serializers.BooleanField(source='balance.is_active')
    status = serializers.ChoiceField(choices=StockStatus.choices)
    unit_price = quantity_field(allow_null=True)
    stock_value = serializers.DecimalField(max_digits=18, decimal_places=4, allow_null=True)


class BranchStockSummarySerializer(serializers.Serializer):
    branch_id = serializers.UUIDField()
    total_products = serializers.IntegerField()
    low_stock_count = serializers.IntegerField()
    out_of_stock_count = serializers.IntegerField()
    total_stock_value = serializers.DecimalField(max_digits=18, decimal_places=4)
    items = BranchStockItemSerializer(many=True)


class LowStockAlertSerializer(serializers.Serializer):
    balance_id = serializers.UUIDField(source='balance.id')
    product_id = serializers.UUIDField(source='product.id')
    product_name = serializers.CharField(source='product.name')
    unit_type = serializers.CharField(source='product.unit_type')
    quantity = quantity_field(source='balance.quantity')
    threshold = quantity_field()
    shortfall = quantity_field()
    urgency_ratio = serializers.DecimalField(max_digits=10, decimal_places=4)


class LedgerCheckSerializer(serializers.Serializer):
    product_id = serializers.UUIDField(source='key.product_id')
    branch_id = serializers.UUIDField(source='key.branch_id')
    ok = serializers.BooleanField()
    movement_count = serializers.IntegerField()
    problems = serializers.ListField(child=serializers.CharField())
