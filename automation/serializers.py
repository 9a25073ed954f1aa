from rest_framework import serializers

from automation.models import INTERVAL_CHOICES, AutomationSettings


class AutomationSettingsSerializer(serializers.ModelSerializer):
    interval_minutes = serializers.ChoiceField(choices=INTERVAL_CHOICES, required=False)

    class Meta:
        model = AutomationSettings
        fields = [
            'is_enabled', 'interval_minutes', 'next_run', 'last_run', 'total_runs',
            'is_running', 'run_started_at', 'cancel_requested',
            'last_error', 'last_error_at', 'last_run_result', 'updated_at',
        ]
        read_only_fields = [
            'next_run', 'last_run', 'total_runs', 'is_running', 'run_started_at',
            'cancel_requested', 'last_error', 'last_error_at', 'last_run_result', 'updated_at',
        ]


class ReprocessSerializer(serializers.Serializer):
    claim_id = serializers.CharField(max_length=20)
