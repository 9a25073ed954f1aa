from rest_framework.permissions import BasePermission

from accounts.authentication import CustomerPrincipal


class IsCustomer(BasePermission):
    """Requests carrying a customer token (email verified by OTP)."""

    def has_permission(self, request, view):
        return isinstance(request.user, CustomerPrincipal)
