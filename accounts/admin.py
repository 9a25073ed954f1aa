from django.contrib import admin
from accounts.models import OTPToken, AuditLog


@admin.register(OTPToken)
class OTPTokenAdmin(admin.ModelAdmin):
    list_display = ['email', 'is_used', 'expires_at', 'created_at', 'ip_address']
    list_filter = ['is_used']
    search_fields = ['email']
    readonly_fields = ['email', 'code', 'expires_at', 'created_at', 'ip_address']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['staff', 'action', 'model_name', 'object_id', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name']
    search_fields = ['staff__username', 'action', 'object_id']
    readonly_fields = ['staff', 'action', 'model_name', 'object_id', 'changes', 'ip_address', 'created_at']
