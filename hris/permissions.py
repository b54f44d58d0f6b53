"""
Custom permission classes for the HR system.

Each dashboard area is gated by role: Admin/HR manage people and leave,
Finance/Admin move money, and Finance, Admin and HR may read financial data.
"""

from rest_framework.permissions import BasePermission
from .models import UserProfile


class RolePermission(BasePermission):
    """
    Base class granting access to users whose profile role is in `allowed_roles`.
    """
    allowed_roles = ()
    message = "You don't have permission to access this resource."

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        try:
            profile = request.user.userprofile
        except UserProfile.DoesNotExist:
            # Create profile if it doesn't exist (should not happen due to signals)
            UserProfile.objects.create(user=request.user)
            return False

        return profile.role in self.allowed_roles


class IsAdminOrHR(RolePermission):
    allowed_roles = (UserProfile.ROLE_ADMIN, UserProfile.ROLE_HR)
    message = "Only Admin or HR users can perform this action."


class IsFinanceOrAdmin(RolePermission):
    """
    Permission class that only allows access to users with Finance or Admin roles.
    """
    allowed_roles = (UserProfile.ROLE_FINANCE, UserProfile.ROLE_ADMIN)
    message = "Only Finance or Admin users can perform this action."


class IsFinanceAdminOrHR(RolePermission):
    allowed_roles = (UserProfile.ROLE_FINANCE, UserProfile.ROLE_ADMIN, UserProfile.ROLE_HR)
    message = "Only Finance, Admin or HR users can access financial data."


class IsEmployeeOrAbove(RolePermission):
    allowed_roles = tuple(role for role, _ in UserProfile.ROLE_CHOICES)


class IsOwnerOrStaffRole(BasePermission):
    """
    Object-level check: the employee owning the object, or any staff role.
    """
    message = "You can only access your own records."

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False

        employee = getattr(obj, 'employee', obj)
        if getattr(employee, 'user_id', None) == request.user.id:
            return True

        try:
            return request.user.userprofile.is_staff_role
        except UserProfile.DoesNotExist:
            return False
