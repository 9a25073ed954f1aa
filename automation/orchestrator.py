"""
Fulfillment Orchestrator - turns paid claims into delivered OTT keys.

Per claim:
  ELIGIBLE -> MATCHING -> {NOT_FOUND, ALREADY_CLAIMED, ALLOCATING}
  ALLOCATING -> {EXHAUSTED, COMMITTING} -> {DELIVERED, COMMIT_FAILED}

Every ledger write is a conditional update (see inventory.allocator), and
any step after the sales record is claimed is backed by a compensating
rollback. Transient failures leave the claim untouched so the next sweep
retries it. Every entry point (beat sweep, cron trigger, payment event,
admin reprocess and manual assignment) goes through this module.
"""

import logging
import time
import uuid

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, transaction
from django.utils import timezone

from automation.exceptions import (
    AllocationContention, FulfillmentError, ManualAssignmentError, TransientFulfillmentError,
)
from claims.models import Claim
from inventory.allocator import KeyAllocator
from inventory.matcher import ClaimMatcher
from inventory.models import SalesRecord
from notifications.services import Notifier

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (DatabaseError, TransientFulfillmentError)

OUTCOME_DELIVERED = 'delivered'
OUTCOME_SKIPPED = 'skipped'
OUTCOME_ERROR = 'error'


class CancellationToken:
    """
    Cooperative cancellation for a sweep. The sweep checks it between
    claims, so a claim in progress always finishes (or rolls back) cleanly.
    """

    def __init__(self, deadline=None, check=None):
        self.deadline = deadline
        self.reason = ''
        self._check = check
        self._cancelled = False

    @classmethod
    def with_timeout(cls, seconds, check=None):
        return cls(deadline=time.monotonic() + seconds, check=check)

    def cancel(self, reason='Cancelled'):
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    @property
    def is_cancelled(self):
        if self._cancelled:
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self.cancel('Sweep time limit reached')
        elif self._check is not None and self._check():
            self.cancel('Cancellation requested')
        return self._cancelled


def _outcome(claim_id, outcome, success=False, message='', retryable=False, rollback_failed=False, **extra):
    result = {
        'claim_id': claim_id,
        'outcome': outcome,
        'success': success,
        'message': message,
        'retryable': retryable,
        'rollback_failed': rollback_failed,
    }
    result.update(extra)
    return result


def _lock_key(claim_id):
    return f'fulfillment_lock:{claim_id}'


def acquire_claim_lock(claim_id):
    """Returns an owner token, or None when another worker holds the claim."""
    token = uuid.uuid4().hex
    if cache.add(_lock_key(claim_id), token, timeout=settings.AUTOMATION_CLAIM_LOCK_SECONDS):
        return token
    return None


def release_claim_lock(claim_id, token):
    """Delete the claim lock unless it expired and another worker took it since."""
    if cache.get(_lock_key(claim_id)) == token:
        cache.delete(_lock_key(claim_id))
    else:
        logger.warning(f'Lock for claim {claim_id} expired while held and was taken by another worker')


class FulfillmentOrchestrator:
    def __init__(self, matcher=None, allocator=None, notifier=None, platform=None):
        self.matcher = matcher or ClaimMatcher()
        self.allocator = allocator or KeyAllocator()
        self.notifier = notifier or Notifier()
        self.platform = platform

    # ---------------------------------------------------------------- single claim

    def process(self, claim):
        """Run one claim through the pipeline. Never raises; returns an outcome dict."""
        claim_id = claim.claim_id
        lock_token = acquire_claim_lock(claim_id)
        if lock_token is None:
            return _outcome(claim_id, OUTCOME_SKIPPED, message='Claim is already being processed')

        try:
            return self._process_locked(claim_id)
        except TRANSIENT_ERRORS as e:
            logger.warning(f'Transient error processing claim {claim_id}, will retry: {e}')
            return _outcome(claim_id, OUTCOME_ERROR, message=str(e), retryable=True)
        except Exception as e:
            logger.error(f'Unexpected error processing claim {claim_id}: {e}', exc_info=True)
            return _outcome(claim_id, OUTCOME_ERROR, message=str(e))
        finally:
            release_claim_lock(claim_id, lock_token)

    def _process_locked(self, claim_id):
        claim = Claim.objects.filter(claim_id=claim_id).first()
        if claim is None:
            return _outcome(claim_id, OUTCOME_SKIPPED, message='Claim not found')
        if not claim.is_eligible:
            return _outcome(
                claim_id, OUTCOME_SKIPPED, ott_status=claim.ott_status,
                message=f'Not eligible (payment={claim.payment_status}, ott={claim.ott_status})',
            )

        # MATCHING
        record = self.matcher.match(claim.activation_code)
        if record is None:
            return self._fail(claim, Claim.OTT_NOT_FOUND, 'Activation code not found in sales records')
        if self.matcher.is_already_claimed(record):
            return self._fail(claim, Claim.OTT_ALREADY_CLAIMED, f'Activation code already claimed by {record.claimed_by}')

        # ALLOCATING
        if not self._claim_sales_record(record, claim.email):
            return self._fail(claim, Claim.OTT_ALREADY_CLAIMED, 'Activation code was claimed concurrently')

        try:
            key = self.allocator.reserve(claim.email, platform=self.platform)
        except (AllocationContention, DatabaseError) as e:
            rollback_ok = self._release_sales_record(record, claim.email)
            logger.warning(f'Key allocation for claim {claim_id} failed, will retry: {e}')
            return _outcome(claim_id, OUTCOME_ERROR, message=str(e), retryable=True, rollback_failed=not rollback_ok)

        if key is None:
            rollback_ok = self._release_sales_record(record, claim.email)
            result = self._fail(claim, Claim.OTT_NO_KEY, 'No OTT keys available')
            result['rollback_failed'] = not rollback_ok
            return result

        # COMMITTING
        return self._commit(claim, key, record, release_record=True)

    # ---------------------------------------------------------------- batch

    def sweep(self, claims=None, cancel_token=None):
        """
        Process a batch of claims (default: every eligible claim, oldest first).
        One claim failing never stops the others.
        """
        if claims is None:
            claims = list(Claim.objects.eligible().order_by('created_at'))

        result = {
            'processed': 0,
            'succeeded': 0,
            'failed': 0,
            'skipped': 0,
            'errors': 0,
            'cancelled': False,
            'rollback_failed': [],
            'details': [],
        }
        for claim in claims:
            if cancel_token is not None and cancel_token.is_cancelled:
                result['cancelled'] = True
                logger.warning(f'Sweep cancelled after {result["processed"]} claim(s): {cancel_token.reason}')
                break

            try:
                outcome = self.process(claim)
            except Exception as e:
                logger.error(f'Claim {claim.claim_id} raised out of process(): {e}', exc_info=True)
                outcome = _outcome(claim.claim_id, OUTCOME_ERROR, message=str(e))

            result['processed'] += 1
            if outcome['outcome'] == OUTCOME_DELIVERED:
                result['succeeded'] += 1
            elif outcome['outcome'] == OUTCOME_SKIPPED:
                result['skipped'] += 1
            else:
                result['failed'] += 1
                if outcome['outcome'] == OUTCOME_ERROR:
                    result['errors'] += 1
            if outcome.get('rollback_failed'):
                result['rollback_failed'].append(claim.claim_id)
            result['details'].append(outcome)

        logger.info(
            f'Fulfillment sweep: processed={result["processed"]} delivered={result["succeeded"]} '
            f'failed={result["failed"]} skipped={result["skipped"]} errors={result["errors"]}'
            f'{" (cancelled)" if result["cancelled"] else ""}'
        )
        if result['rollback_failed']:
            logger.critical(f'Sweep left ledger rows to reconcile for claims: {", ".join(result["rollback_failed"])}')
        return result

    # ---------------------------------------------------------------- admin

    def manual_assign(self, claim, key_id):
        """
        Assign a specific key to a paid claim. Raises ManualAssignmentError
        when the assignment is refused; nothing is changed in that case.
        """
        claim_id = claim.claim_id
        lock_token = acquire_claim_lock(claim_id)
        if lock_token is None:
            raise ManualAssignmentError('Claim is being processed right now, try again shortly', status_code=409)

        try:
            claim = Claim.objects.get(pk=claim.pk)
            if claim.ott_status == Claim.OTT_DELIVERED:
                raise ManualAssignmentError('Claim already has a delivered OTT code', status_code=409)
            if claim.payment_status != Claim.PAYMENT_PAID:
                raise ManualAssignmentError('Claim has not been paid')

            record = self.matcher.match(claim.activation_code)
            if record is None:
                raise ManualAssignmentError("Sales record not found for this claim's activation code", status_code=404)

            claimed_here = False
            if record.status == SalesRecord.AVAILABLE:
                if not self._claim_sales_record(record, claim.email):
                    raise ManualAssignmentError('Activation code was claimed concurrently', status_code=409)
                claimed_here = True
            elif (record.claimed_by or '').lower() != claim.email.lower():
                raise ManualAssignmentError(
                    f'Activation code already claimed by {record.claimed_by}', status_code=409,
                )

            key = self.allocator.reserve_specific(key_id, claim.email)
            if key is None:
                if claimed_here:
                    self._release_sales_record(record, claim.email)
                raise ManualAssignmentError('OTT key not found or not available', status_code=409)

            outcome = self._commit(claim, key, record, release_record=claimed_here)
            if not outcome['success']:
                raise FulfillmentError(outcome['message'])
            logger.info(f'Manual assignment: key {key.pk} -> claim {claim_id}')
            return outcome
        finally:
            release_claim_lock(claim_id, lock_token)

    # ---------------------------------------------------------------- steps

    def _commit(self, claim, key, record, release_record):
        claim_id = claim.claim_id
        prior_status = claim.ott_status
        now = timezone.now()
        try:
            with transaction.atomic():
                updated = Claim.objects.filter(pk=claim.pk, ott_status=prior_status).update(
                    ott_code=key.activation_code,
                    ott_status=Claim.OTT_DELIVERED,
                    platform=key.product,
                    ott_assigned_at=now,
                    updated_at=now,
                )
                if updated != 1:
                    raise FulfillmentError(f'Claim {claim_id} changed while it was being fulfilled')
        except Exception as e:
            logger.error(f'Commit failed for claim {claim_id}, rolling back key {key.pk}: {e}', exc_info=True)
            rollback_ok = self._release_key(key, claim.email)
            if release_record:
                rollback_ok = self._release_sales_record(record, claim.email) and rollback_ok
            return _outcome(
                claim_id, OUTCOME_ERROR, message=f'Commit failed: {e}',
                retryable=isinstance(e, TRANSIENT_ERRORS), rollback_failed=not rollback_ok,
            )

        claim.refresh_from_db()
        logger.info(f'Claim {claim_id} delivered: {key.product} key {key.pk}')
        self.notifier.send(claim.email, 'automation_success', claim=claim)
        return _outcome(
            claim_id, OUTCOME_DELIVERED, success=True, message='OTT code delivered',
            ott_status=Claim.OTT_DELIVERED, platform=key.product,
        )

    def _fail(self, claim, new_status, message):
        """Record a business-rule failure. Notifies only when this call changed the status."""
        if claim.ott_status != new_status:
            updated = Claim.objects.filter(pk=claim.pk, ott_status=claim.ott_status).update(
                ott_status=new_status, updated_at=timezone.now(),
            )
            if updated != 1:
                claim.refresh_from_db(fields=['ott_status'])
                logger.info(f'Claim {claim.claim_id} moved to {claim.ott_status} concurrently, not recording {new_status}')
                return _outcome(
                    claim.claim_id, OUTCOME_SKIPPED, ott_status=claim.ott_status,
                    message='Claim changed while it was being processed',
                )
            claim.ott_status = new_status
            self.notifier.send(claim.email, 'automation_failed', {'reason': new_status}, claim=claim)
        logger.info(f'Claim {claim.claim_id}: {new_status} ({message})')
        return _outcome(claim.claim_id, new_status, message=message, ott_status=new_status)

    def _claim_sales_record(self, record, email):
        now = timezone.now()
        updated = SalesRecord.objects.filter(pk=record.pk, status=SalesRecord.AVAILABLE).update(
            status=SalesRecord.CLAIMED, claimed_by=email, claimed_date=now, updated_at=now,
        )
        return updated == 1

    def _release_sales_record(self, record, email):
        try:
            updated = SalesRecord.objects.filter(pk=record.pk, status=SalesRecord.CLAIMED, claimed_by=email).update(
                status=SalesRecord.AVAILABLE, claimed_by=None, claimed_date=None, updated_at=timezone.now(),
            )
        except Exception as e:
            logger.critical(
                f'LEDGER INCONSISTENCY: could not roll back sales record {record.pk} '
                f'({record.activation_code}) claimed by {email}: {e}',
                exc_info=True,
            )
            return False
        if updated != 1:
            logger.critical(
                f'LEDGER INCONSISTENCY: sales record {record.pk} ({record.activation_code}) was no longer '
                f'claimed by {email} when rolling back'
            )
            return False
        return True

    def _release_key(self, key, email):
        try:
            released = self.allocator.release(key, email)
        except Exception as e:
            logger.critical(
                f'LEDGER INCONSISTENCY: could not release OTT key {key.pk} assigned to {email}: {e}',
                exc_info=True,
            )
            return False
        if not released:
            logger.critical(f'LEDGER INCONSISTENCY: OTT key {key.pk} was no longer assigned to {email} when rolling back')
        return released
