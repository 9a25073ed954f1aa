"""
Scheduled fulfillment sweeps and single-claim reprocessing.

The run lock lives on the AutomationSettings row and is taken with a
conditional update, so overlapping triggers (beat, external cron, admin
button) never run two sweeps at once. A lock older than
AUTOMATION_LOCK_STALE_MINUTES is assumed abandoned by a crashed worker
and is broken.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from automation.models import AutomationSettings
from automation.orchestrator import CancellationToken, FulfillmentOrchestrator
from claims.models import Claim

logger = logging.getLogger(__name__)


def _acquire_run_lock():
    """
    Take the sweep run lock. Returns the run_started_at written as the owner
    token, or None when another sweep holds a fresh lock.
    """
    now = timezone.now()
    stale_before = now - timedelta(minutes=settings.AUTOMATION_LOCK_STALE_MINUTES)
    AutomationSettings.get_config()

    stale = AutomationSettings.objects.filter(pk=1, is_running=True).filter(
        Q(run_started_at__lt=stale_before) | Q(run_started_at__isnull=True)
    )
    if stale.exists():
        logger.warning(
            f'Breaking stale automation run lock (held longer than {settings.AUTOMATION_LOCK_STALE_MINUTES} minutes)'
        )

    acquired = AutomationSettings.objects.filter(pk=1).filter(
        Q(is_running=False) | Q(run_started_at__lt=stale_before) | Q(run_started_at__isnull=True)
    ).update(is_running=True, run_started_at=now, cancel_requested=False, updated_at=now)
    return now if acquired == 1 else None


def _release_run_lock(token, summary, error=''):
    """
    Record the run and release the lock, but only if `token` still owns it.
    A sweep whose lock was broken as stale records its stats and leaves the
    new owner's lock alone.
    """
    now = timezone.now()
    config = AutomationSettings.get_config()
    next_run = config.compute_next_run(now)
    fields = {
        'last_run': now,
        'next_run': next_run,
        'last_run_result': summary,
        'last_error': error,
        'total_runs': F('total_runs') + 1,
        'updated_at': now,
    }
    if error:
        fields['last_error_at'] = now

    released = AutomationSettings.objects.filter(pk=1, is_running=True, run_started_at=token).update(
        is_running=False, run_started_at=None, cancel_requested=False, **fields,
    )
    if not released:
        logger.warning(f'Run lock started at {token.isoformat()} was taken over; leaving the current lock in place')
        AutomationSettings.objects.filter(pk=1).update(**fields)
    config.refresh_from_db(fields=['total_runs'])
    return config.total_runs, next_run


def _cancel_requested():
    return AutomationSettings.objects.filter(pk=1, cancel_requested=True).exists()


def _summary(results):
    return {key: value for key, value in results.items() if key != 'details'}


def _skipped(message, config=None):
    config = config or AutomationSettings.get_config()
    return {
        'success': True,
        'message': message,
        'skipped': True,
        'run_number': config.total_runs,
        'next_run': config.next_run.isoformat() if config.next_run else None,
    }


def run_scheduled_sweep(force=False, orchestrator=None):
    """
    Run one fulfillment sweep if automation is enabled and due.

    `force` skips the enabled/due checks (admin "run now") but never the run lock.
    """
    config = AutomationSettings.get_config()
    now = timezone.now()

    if not force:
        if not config.is_enabled:
            return _skipped('Automation is disabled', config)
        tolerance = timedelta(seconds=settings.AUTOMATION_RUN_TOLERANCE_SECONDS)
        if config.next_run and now + tolerance < config.next_run:
            return _skipped('Not due yet', config)

    token = _acquire_run_lock()
    if token is None:
        logger.info('Fulfillment sweep skipped: another sweep is running')
        return _skipped('A sweep is already running')

    orchestrator = orchestrator or FulfillmentOrchestrator()
    cancel_token = CancellationToken.with_timeout(settings.AUTOMATION_SWEEP_TIME_LIMIT_SECONDS, check=_cancel_requested)
    results = None
    error = ''
    try:
        results = orchestrator.sweep(cancel_token=cancel_token)
    except Exception as e:
        error = str(e)
        logger.error(f'Fulfillment sweep crashed: {e}', exc_info=True)
    finally:
        summary = _summary(results) if results else {'error': error}
        run_number, next_run = _release_run_lock(token, summary, error)

    if error:
        return {
            'success': False,
            'message': f'Sweep failed: {error}',
            'skipped': False,
            'run_number': run_number,
            'next_run': next_run.isoformat(),
        }

    message = (
        f'Processed {results["processed"]} claim(s): {results["succeeded"]} delivered, '
        f'{results["failed"]} failed, {results["skipped"]} skipped'
    )
    if results['cancelled']:
        message += f' (stopped early: {cancel_token.reason})'
    return {
        'success': True,
        'message': message,
        'skipped': False,
        'results': results,
        'run_number': run_number,
        'next_run': next_run.isoformat(),
    }


def request_cancel():
    """Ask a running sweep to stop after its current claim. Returns True if a sweep was running."""
    updated = AutomationSettings.objects.filter(pk=1, is_running=True).update(
        cancel_requested=True, updated_at=timezone.now(),
    )
    if updated:
        logger.warning('Cancellation requested for the running fulfillment sweep')
    return bool(updated)


def reprocess_claim(claim_id, orchestrator=None):
    """
    Manually push one claim through the pipeline, bypassing the sweep.
    Failure states are reset to pending first; a delivered claim is left alone.
    """
    claim = Claim.objects.filter(claim_id=claim_id).first()
    if claim is None:
        return {'success': False, 'message': f'Claim {claim_id} not found', 'outcome': 'not_found'}

    if claim.ott_status == Claim.OTT_DELIVERED:
        return {
            'claim_id': claim_id,
            'success': True,
            'outcome': 'skipped',
            'message': 'Claim already delivered',
            'ott_status': claim.ott_status,
        }
    if claim.payment_status != Claim.PAYMENT_PAID:
        return {
            'claim_id': claim_id,
            'success': False,
            'outcome': 'skipped',
            'message': f'Claim payment is {claim.payment_status}',
            'ott_status': claim.ott_status,
        }

    if claim.ott_status in Claim.REPROCESSABLE_OTT_STATUSES or claim.ott_status == Claim.OTT_NOT_STARTED:
        Claim.objects.filter(pk=claim.pk, ott_status=claim.ott_status).update(
            ott_status=Claim.OTT_PENDING, updated_at=timezone.now(),
        )
        logger.info(f'Claim {claim_id} reset from {claim.ott_status} to pending for reprocessing')
        claim.refresh_from_db()

    orchestrator = orchestrator or FulfillmentOrchestrator()
    return orchestrator.process(claim)
