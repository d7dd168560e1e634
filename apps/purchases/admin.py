# ==========================================
# apps/purchases/admin.py
# ==========================================

from django.contrib import admin
from django.utils.html import format_html
from .models import Sale, SaleItem, BalanceEvent, BalanceEventType


class SaleItemInline(admin.TabularInline):
    """Inline admin for sale lines."""
    model = SaleItem
    extra = 0
    fields = ['product', 'product_name_at_purchase', 'quantity', 'price_at_purchase', 'is_refill']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        """Sale lines are written by the ledger only."""
        return False


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    """Admin interface for café sales."""

    list_display = [
        'created_at',
        'customer',
        'institution',
        'total_amount',
        'session_admin_name',
        'status_badge',
    ]
    list_filter = ['institution', 'created_at']
    search_fields = ['customer__name', 'session_admin_name']
    date_hierarchy = 'created_at'
    readonly_fields = [
        'id', 'customer', 'institution', 'session_admin', 'session_admin_name',
        'clerk', 'total_amount', 'created_at', 'undone_at', 'undone_by',
    ]
    inlines = [SaleItemInline]

    def status_badge(self, obj):
        """Display whether the sale was undone."""
        if obj.is_undone:
            bg, fg, label = '#B85C5C', 'white', 'Undone'
        else:
            bg, fg, label = '#6B8E5E', 'white', 'Completed'
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, label
        )
    status_badge.short_description = 'Status'

    def has_add_permission(self, request):
        return False


@admin.register(BalanceEvent)
class BalanceEventAdmin(admin.ModelAdmin):
    """Read-only view of ledger balance events."""

    list_display = ['created_at', 'target_user', 'type_badge', 'amount', 'balance_after', 'source']
    list_filter = ['event_type', 'institution']
    search_fields = ['target_user__name']
    readonly_fields = [
        'id', 'institution', 'target_user', 'event_type', 'amount',
        'balance_after', 'source', 'created_by', 'details', 'created_at',
    ]

    def type_badge(self, obj):
        colors = {
            BalanceEventType.DEPOSIT: '#6B8E5E',
            BalanceEventType.BALANCE_ADJUSTMENT: '#A47449',
            BalanceEventType.SALE: '#2C1810',
            BalanceEventType.SALE_UNDO: '#B85C5C',
        }
        return format_html(
            '<span style="background: {}; color: white; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            colors.get(obj.event_type, '#ccc'), obj.get_event_type_display()
        )
    type_badge.short_description = 'Type'

    def has_add_permission(self, request):
        return False
