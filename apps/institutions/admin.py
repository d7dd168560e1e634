# ==========================================
# apps/institutions/admin.py
# ==========================================

from django.contrib import admin
from .models import Institution


@admin.register(Institution)
class InstitutionAdmin(admin.ModelAdmin):
    """Admin interface for institutions and their café policies."""

    list_display = [
        'name',
        'balance_limit_enabled',
        'balance_limit_amount',
        'spending_limit_enabled',
        'sugar_policy_enabled',
        'admins_purchase_free',
    ]
    list_filter = ['balance_limit_enabled', 'spending_limit_enabled', 'sugar_policy_enabled']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'name')
        }),
        ('Balance Limit', {
            'fields': (
                'balance_limit_enabled',
                'balance_limit_amount',
                'balance_limit_exempt_admins',
                'balance_limit_exempt_test_users',
            ),
        }),
        ('Spending Limit', {
            'fields': (
                'spending_limit_enabled',
                'spending_limit_amount',
                'spending_limit_applies_to_regular_users',
                'spending_limit_applies_to_admins',
                'spending_limit_applies_to_test_users',
            ),
            'classes': ('collapse',),
        }),
        ('Sugar Policy', {
            'fields': (
                'sugar_policy_enabled',
                'sugar_policy_max_unhealthy_enabled',
                'sugar_policy_max_unhealthy_per_day',
                'sugar_policy_max_per_product_enabled',
                'sugar_policy_max_per_product_per_day',
            ),
            'classes': ('collapse',),
        }),
        ('Admins', {
            'fields': ('admins_purchase_free',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )
