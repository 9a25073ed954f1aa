import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name='accounts.tasks.task_purge_expired_otps', ignore_result=True)
def task_purge_expired_otps():
    from accounts.otp_service import purge_expired_otps

    deleted = purge_expired_otps()
    if deleted:
        logger.info(f'Purged {deleted} expired OTP token(s)')
    return deleted
