from rest_framework import viewsets

from apps.accounts.permissions import IsCafeOperator
from .models import Product
from .serializers import ProductSerializer, ProductFilterSerializer


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only product catalog for the operator's institution.

    list: Get products (filter with ?enabled=true)
    retrieve: Get a specific product
    """

    serializer_class = ProductSerializer
    permission_classes = [IsCafeOperator]

    def get_queryset(self):
        queryset = Product.objects.filter(institution_id=self.request.user.institution_id)

        filter_serializer = ProductFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        enabled = filter_serializer.validated_data.get('enabled')
        if enabled is not None:
            queryset = queryset.filter(is_enabled=enabled)

        return queryset
