from rest_framework import serializers
from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    """Product record as consumed by the purchase engine and the product grid."""

    class Meta:
        model = Product
        fields = [
            'id',
            'institution',
            'name',
            'emoji',
            'price',
            'max_per_day',
            'unhealthy',
            'is_enabled',
            'sort_order',
            'refill_enabled',
            'refill_price',
            'refill_time_limit_minutes',
            'refill_max_refills',
        ]
        read_only_fields = fields


class ProductFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for product listing.

    Query Parameters:
        enabled (bool): Only enabled (or only disabled) products
    """

    enabled = serializers.BooleanField(required=False, allow_null=True, default=None)
