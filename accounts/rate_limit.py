"""
Expiring counters in the shared cache.

Used for OTP sends and payment attempts. The counter window starts at the
first hit and is not extended by later hits, so a blocked caller is
released exactly `window_seconds` after their first attempt.
"""

import logging

from django.core.cache import cache

logger = logging.getLogger(__name__)


class ExpiringCounter:
    def __init__(self, namespace, limit, window_seconds):
        self.namespace = namespace
        self.limit = limit
        self.window_seconds = window_seconds

    def _key(self, identity):
        return f'ratelimit:{self.namespace}:{str(identity).lower()}'

    def count(self, identity):
        return cache.get(self._key(identity), 0)

    def remaining(self, identity):
        return max(0, self.limit - self.count(identity))

    def is_blocked(self, identity):
        return self.count(identity) >= self.limit

    def hit(self, identity):
        """Record one attempt. Returns the new count."""
        key = self._key(identity)
        if cache.add(key, 1, timeout=self.window_seconds):
            return 1
        try:
            return cache.incr(key)
        except ValueError:
            # Expired between add() and incr()
            cache.add(key, 1, timeout=self.window_seconds)
            return 1

    def reset(self, identity):
        cache.delete(self._key(identity))
