"""
Matching of customer-entered activation codes against the sales ledger.

Lookup order: exact, case-insensitive, stored normalized form, and as a
last resort a normalized scan over legacy rows imported before
normalized_code existed. The matcher never writes.
"""

import logging

from inventory.models import SalesRecord, normalize_activation_code

logger = logging.getLogger(__name__)


class ClaimMatcher:

    def match(self, activation_code):
        """Return the SalesRecord for this activation code, or None."""
        raw = (activation_code or '').strip()
        if not raw:
            return None

        record = SalesRecord.objects.filter(activation_code=raw).first()
        if record:
            return record

        record = SalesRecord.objects.filter(activation_code__iexact=raw).first()
        if record:
            return record

        normalized = normalize_activation_code(raw)
        record = SalesRecord.objects.filter(normalized_code=normalized).first()
        if record:
            return record

        return self._scan_legacy(normalized)

    def is_already_claimed(self, record):
        return record.status == SalesRecord.CLAIMED

    def _scan_legacy(self, normalized):
        # Bounded by rows without a stored normalized form; empty after a fresh import.
        legacy = SalesRecord.objects.filter(normalized_code='').only('id', 'activation_code')
        for record in legacy.iterator():
            if normalize_activation_code(record.activation_code) == normalized:
                logger.info(f'Activation code matched by legacy scan: {record.activation_code}')
                return SalesRecord.objects.get(pk=record.pk)
        return None
