from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'catalog'

router = DefaultRouter()
router.register(r'products', views.ProductViewSet, basename='product')

urlpatterns = [
    # GET    /api/catalog/products/        - List institution products
    # GET    /api/catalog/products/{id}/   - Get product details
    path('', include(router.urls)),
]
