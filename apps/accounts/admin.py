# ==========================================
# apps/accounts/admin.py
# ==========================================

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html
from .models import User, UserRole


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for café users.

    Children and operators share one table; the role badge tells them apart.
    Balances are shown read-only because the ledger is the only writer.
    """

    list_display = [
        'name',
        'email',
        'institution',
        'role_badge',
        'balance',
        'daily_spend_limit',
        'is_active',
    ]

    list_filter = [
        'role',
        'institution',
        'is_active',
        'is_test_user',
    ]

    search_fields = [
        'name',
        'email',
        'number',
    ]

    ordering = ['name']

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'number', 'email', 'password')
        }),
        ('Café', {
            'fields': ('institution', 'role', 'is_test_user', 'balance', 'daily_spend_limit'),
        }),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'last_login'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        ('Create User', {
            'classes': ('wide',),
            'fields': ('email', 'name', 'institution', 'role', 'password1', 'password2'),
        }),
    )

    readonly_fields = [
        'balance',
        'created_at',
        'last_login',
    ]

    filter_horizontal = ['groups', 'user_permissions']

    def role_badge(self, obj):
        """Display role as colored badge."""
        colors = {
            UserRole.CHILD: ('#E5C49A', '#2C1810'),
            UserRole.CLERK: ('#A47449', 'white'),
            UserRole.ADMIN: ('#6B8E5E', 'white'),
        }
        bg, fg = colors.get(obj.role, ('#ccc', '#666'))
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, obj.get_role_display()
        )
    role_badge.short_description = 'Role'
    role_badge.admin_order_field = 'role'
