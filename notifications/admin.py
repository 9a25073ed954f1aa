from django.contrib import admin
from notifications.models import NotificationLog


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ['recipient', 'channel', 'template', 'claim_id', 'success', 'created_at']
    list_filter = ['channel', 'template', 'success']
    search_fields = ['recipient', 'claim_id', 'subject']
    readonly_fields = ['recipient', 'channel', 'template', 'subject', 'claim_id', 'success', 'error', 'created_at']
