from rest_framework.permissions import BasePermission


class IsAdminRole(BasePermission):
    """
    Order management is for ADMIN role holders and Django staff.
    """
    message = "Admin access required"

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_admin)
