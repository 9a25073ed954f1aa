"""
drf-spectacular preprocessing hooks.
"""


def preprocess_exclude_admin(endpoints, **kwargs):
    """Exclude staff dashboard, cron and webhook endpoints from public API docs."""
    filtered = []
    for (path, path_regex, method, callback) in endpoints:
        # Staff dashboard API
        if path.startswith('/api/admin/'):
            continue
        # Django admin
        if path.startswith('/admin/'):
            continue
        if path in ('/health/',):
            continue
        # Cron trigger and settings are staff/cron only
        if path.startswith('/api/automation/'):
            continue
        # Gateway callbacks
        if path.startswith('/api/payments/webhook/'):
            continue
        filtered.append((path, path_regex, method, callback))
    return filtered
