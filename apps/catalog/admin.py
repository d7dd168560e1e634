# ==========================================
# apps/catalog/admin.py
# ==========================================

from django.contrib import admin
from apps.catalog.models import (
    ChildAllergenSetting,
    ParentLimit,
    ParentSugarPolicy,
    Product,
    ProductAllergen,
    ProductLimit,
)


class ProductAllergenInline(admin.TabularInline):
    model = ProductAllergen
    extra = 0


class ProductLimitInline(admin.TabularInline):
    """Inline admin for the institution-wide daily cap."""
    model = ProductLimit
    extra = 0
    fields = ['institution', 'max_per_day']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for café products."""

    list_display = [
        'name',
        'institution',
        'price',
        'unhealthy',
        'is_enabled',
        'refill_enabled',
        'refill_price',
        'sort_order',
    ]
    list_filter = [
        'institution',
        'is_enabled',
        'unhealthy',
        'refill_enabled',
    ]
    search_fields = ['name']
    ordering = ['institution', 'sort_order', 'name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [ProductLimitInline, ProductAllergenInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'institution', 'name', 'emoji', 'price', 'sort_order')
        }),
        ('Rules', {
            'fields': ('is_enabled', 'unhealthy', 'max_per_day'),
        }),
        ('Refill', {
            'fields': ('refill_enabled', 'refill_price', 'refill_time_limit_minutes', 'refill_max_refills'),
            'classes': ('collapse',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(ParentLimit)
class ParentLimitAdmin(admin.ModelAdmin):
    list_display = ['child', 'product', 'max_per_day', 'parent_name', 'updated_at']
    list_filter = ['product__institution']
    search_fields = ['child__name', 'product__name', 'parent_name']
    raw_id_fields = ['child', 'product']


@admin.register(ParentSugarPolicy)
class ParentSugarPolicyAdmin(admin.ModelAdmin):
    list_display = ['child', 'block_unhealthy', 'max_unhealthy_per_day', 'max_unhealthy_per_product_per_day']
    search_fields = ['child__name']
    raw_id_fields = ['child']


@admin.register(ChildAllergenSetting)
class ChildAllergenSettingAdmin(admin.ModelAdmin):
    list_display = ['child', 'allergen', 'policy', 'institution', 'updated_at']
    list_filter = ['institution', 'allergen', 'policy']
    search_fields = ['child__name']
    raw_id_fields = ['child']
