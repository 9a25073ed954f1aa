import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name='payments.tasks.task_sync_pending_payments', bind=True, max_retries=0)
def task_sync_pending_payments(self):
    from payments.services import sync_pending_payments

    result = sync_pending_payments()
    if result.get('fixed'):
        logger.info(f'task_sync_pending_payments: fixed {result["fixed"]} claim(s)')
    return {key: value for key, value in result.items() if key != 'results'}
