"""
Atomic OTT key allocation.

Every state change is a conditional UPDATE whose WHERE clause re-checks the
expected status. A row count of 1 means we won; 0 means another caller got
there first. No key can be assigned to two claims, whatever the concurrency.
"""

import logging

from django.db.models import Q
from django.utils import timezone

from automation.exceptions import AllocationContention
from inventory.models import OTTKey

logger = logging.getLogger(__name__)


class KeyAllocator:
    def __init__(self, max_attempts=5):
        self.max_attempts = max_attempts

    def reserve(self, email, platform=None):
        """
        Reserve the oldest available key for `email`.

        Returns the assigned OTTKey, or None when no available key matches.
        Raises AllocationContention if every attempt lost the race.
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = self._next_candidate(platform)
            if candidate is None:
                return None
            if self._claim(candidate.pk, email):
                logger.info(f'Reserved OTT key {candidate.pk} ({candidate.product}) for {email}')
                return OTTKey.objects.get(pk=candidate.pk)
            logger.debug(f'Lost race for key {candidate.pk} (attempt {attempt}/{self.max_attempts})')

        logger.warning(f'Key allocation for {email} gave up after {self.max_attempts} contended attempts')
        raise AllocationContention(self.max_attempts)

    def reserve_specific(self, key_id, email):
        """Assign a chosen key. Returns the key, or None if it is missing or not available."""
        if not self._claim(key_id, email):
            return None
        logger.info(f'Manually reserved OTT key {key_id} for {email}')
        return OTTKey.objects.get(pk=key_id)

    def release(self, key, email):
        """Return a reserved key to the pool. Only undoes an assignment made for `email`."""
        updated = OTTKey.objects.filter(
            pk=key.pk, status=OTTKey.ASSIGNED, assigned_email=email,
        ).update(
            status=OTTKey.AVAILABLE,
            assigned_email=None,
            assigned_date=None,
            updated_at=timezone.now(),
        )
        if updated:
            logger.info(f'Released OTT key {key.pk} back to the pool')
        return bool(updated)

    def available_count(self, platform=None):
        return self._available(platform).count()

    def _available(self, platform=None):
        qs = OTTKey.objects.filter(status=OTTKey.AVAILABLE)
        if platform:
            qs = qs.filter(Q(product__iexact=platform) | Q(product_sub_category__iexact=platform))
        return qs

    def _next_candidate(self, platform=None):
        return self._available(platform).order_by('created_at', 'pk').only('pk', 'product').first()

    def _claim(self, key_id, email):
        updated = OTTKey.objects.filter(pk=key_id, status=OTTKey.AVAILABLE).update(
            status=OTTKey.ASSIGNED,
            assigned_email=email,
            assigned_date=timezone.now(),
            updated_at=timezone.now(),
        )
        return updated == 1
