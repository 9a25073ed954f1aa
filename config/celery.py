"""
Systech Celery Configuration
Queue routing and beat scheduling for the fulfillment sweep,
payment reconciliation and housekeeping.
"""

import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('systech')
app.config_from_object('django.conf:settings', namespace='CELERY')

# Queue definitions
app.conf.task_default_queue = 'default'

app.conf.task_routes = {
    'automation.*': {'queue': 'fulfillment'},
    'payments.*': {'queue': 'default'},
    'accounts.*': {'queue': 'default'},
}

app.conf.task_queues = {
    'default': {
        'exchange': 'default',
        'routing_key': 'default',
    },
    'fulfillment': {
        'exchange': 'fulfillment',
        'routing_key': 'fulfillment',
    },
}

app.autodiscover_tasks()

# Celery Beat Schedule
from celery.schedules import crontab

app.conf.beat_schedule = {
    # Beat ticks every minute; the sweep itself honours AutomationSettings.interval_minutes
    'run-fulfillment-sweep': {
        'task': 'automation.tasks.task_run_fulfillment_sweep',
        'schedule': 60.0,
    },
    # Catch payments whose browser callback never reached us
    'sync-pending-payments': {
        'task': 'payments.tasks.task_sync_pending_payments',
        'schedule': crontab(minute='*/15'),
    },
    'purge-expired-otps': {
        'task': 'accounts.tasks.task_purge_expired_otps',
        'schedule': crontab(hour=3, minute=0),
    },
}
