"""
Celery tasks for OTT fulfillment:
- task_run_fulfillment_sweep: beat tick, runs a sweep when AutomationSettings says it is due
- task_process_claim: event trigger once a claim's payment is confirmed
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name='automation.tasks.task_run_fulfillment_sweep', bind=True, max_retries=0)
def task_run_fulfillment_sweep(self, force=False):
    from automation.scheduler import run_scheduled_sweep

    result = run_scheduled_sweep(force=force)
    if not result.get('skipped'):
        logger.info(f'task_run_fulfillment_sweep: {result["message"]}')
    return result


@shared_task(name='automation.tasks.task_process_claim', bind=True, max_retries=3, default_retry_delay=30)
def task_process_claim(self, claim_id):
    """Fulfill one freshly paid claim. Transient failures retry with backoff; the sweep is the backstop."""
    from automation.orchestrator import FulfillmentOrchestrator
    from claims.models import Claim

    claim = Claim.objects.filter(claim_id=claim_id).first()
    if claim is None:
        logger.error(f'task_process_claim: claim {claim_id} not found')
        return {'success': False, 'error': 'Claim not found'}

    outcome = FulfillmentOrchestrator().process(claim)
    if outcome.get('retryable') and self.request.retries < self.max_retries:
        delay = 30 * (2 ** self.request.retries)
        logger.warning(f'Retrying claim {claim_id} in {delay}s: {outcome["message"]}')
        raise self.retry(countdown=delay)
    return outcome
