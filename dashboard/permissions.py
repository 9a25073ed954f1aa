import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission


class IsStaffAdmin(BasePermission):
    """Allow access only to active staff members or superusers."""

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return bool(user.is_superuser or user.is_staff)


class IsStaffOrCronSecret(IsStaffAdmin):
    """Staff, or an external scheduler presenting X-Cron-Secret."""

    def has_permission(self, request, view):
        secret = settings.AUTOMATION_CRON_SECRET
        presented = request.headers.get('X-Cron-Secret', '')
        if secret and presented and hmac.compare_digest(presented, secret):
            return True
        return super().has_permission(request, view)
