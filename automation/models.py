from datetime import timedelta

from django.db import models
from django.utils import timezone

INTERVAL_CHOICES = [
    (1, 'Every minute'),
    (5, 'Every 5 minutes'),
    (30, 'Every 30 minutes'),
    (60, 'Every hour'),
    (360, 'Every 6 hours'),
    (1440, 'Once a day'),
]


class AutomationSettings(models.Model):
    """Singleton controlling the scheduled fulfillment sweep."""

    is_enabled = models.BooleanField(default=False, help_text='Master switch for scheduled sweeps')
    interval_minutes = models.PositiveIntegerField(choices=INTERVAL_CHOICES, default=5)
    next_run = models.DateTimeField(null=True, blank=True)
    last_run = models.DateTimeField(null=True, blank=True)
    total_runs = models.PositiveIntegerField(default=0)

    # Run lock - taken with a conditional update, see automation.scheduler
    is_running = models.BooleanField(default=False)
    run_started_at = models.DateTimeField(null=True, blank=True)
    cancel_requested = models.BooleanField(default=False)

    last_error = models.TextField(blank=True, default='')
    last_error_at = models.DateTimeField(null=True, blank=True)
    last_run_result = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Automation Settings'
        verbose_name_plural = 'Automation Settings'

    def __str__(self):
        state = 'running' if self.is_running else ('enabled' if self.is_enabled else 'disabled')
        return f'Automation ({state}, every {self.interval_minutes}m)'

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def get_config(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    def compute_next_run(self, from_time=None):
        return (from_time or timezone.now()) + timedelta(minutes=self.interval_minutes)
