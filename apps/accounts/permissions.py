"""
Permission classes shared by the café apps.

Operators (admins and clerks) act on behalf of one institution; children
never authenticate.
"""
from rest_framework.permissions import BasePermission

from .models import UserRole


class IsCafeOperator(BasePermission):
    """
    Allow authenticated admins/clerks that belong to an institution.

    Usage:
        @permission_classes([IsCafeOperator])
        def checkout(request):
            ...
    """

    message = 'Only café operators attached to an institution can do this.'

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and user.is_operator
            and user.institution_id
        )


class IsInstitutionAdmin(IsCafeOperator):
    """Operators with the admin role (deposits, balance edits, undo)."""

    message = 'Only institution admins can do this.'

    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.role == UserRole.ADMIN
