from django.contrib import admin
from automation.models import AutomationSettings


@admin.register(AutomationSettings)
class AutomationSettingsAdmin(admin.ModelAdmin):
    list_display = ['is_enabled', 'interval_minutes', 'is_running', 'next_run', 'last_run', 'total_runs']
    readonly_fields = [
        'is_running', 'run_started_at', 'last_run', 'total_runs',
        'last_error', 'last_error_at', 'last_run_result', 'updated_at',
    ]

    def has_add_permission(self, request):
        return not AutomationSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
