from rest_framework.permissions import BasePermission


class IsAdministrator(BasePermission):
    """Allows access to super admins and company admins"""
    message = 'Administrator role required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_administrator)


class IsSuperAdmin(BasePermission):
    message = 'Super admin role required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_super_admin)
