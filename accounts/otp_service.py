"""
OTP Service - email one-time passwords for the customer dashboard
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from accounts.models import OTPToken
from accounts.rate_limit import ExpiringCounter

logger = logging.getLogger(__name__)


def otp_counter():
    return ExpiringCounter('otp', settings.OTP_MAX_PER_HOUR, 3600)


def normalize_email(email):
    return (email or '').strip().lower()


def send_otp(email, ip_address=None, notifier=None):
    """
    Generate an OTP for `email` and mail it.

    Returns:
        dict: {'success': bool, 'message': str, 'status': http status hint}
    """
    from claims.models import Claim
    from notifications.services import Notifier

    email = normalize_email(email)
    if not Claim.objects.for_email(email).exists():
        logger.warning(f'OTP requested for unknown email {email}')
        return {'success': False, 'message': 'Email not found. Please check the email used for your claim.', 'status': 404}

    counter = otp_counter()
    if counter.is_blocked(email):
        logger.warning(f'OTP rate limit hit for {email} (max={counter.limit}/hour)')
        return {'success': False, 'message': 'Too many OTP requests. Please try again later.', 'status': 429}
    counter.hit(email)

    # Invalidate previous unused OTPs
    OTPToken.objects.filter(email=email, is_used=False).update(is_used=True)

    code = OTPToken.generate_code()
    OTPToken.objects.create(
        email=email, code=code,
        expires_at=timezone.now() + timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
        ip_address=ip_address or None,
    )

    notifier = notifier or Notifier()
    result = notifier.send(email, 'otp', {'code': code, 'expiry_minutes': settings.OTP_EXPIRY_MINUTES})
    if result['success']:
        logger.info(f'OTP sent to {email}')
        return {'success': True, 'message': 'OTP sent successfully! Please check your inbox and spam folder.', 'status': 200}

    logger.error(f'OTP email to {email} failed')
    return {'success': False, 'message': 'Failed to send OTP email. Please try again later.', 'status': 502}


def verify_otp(email, code):
    """
    Verify and consume an OTP.

    Returns:
        dict: {'success': bool, 'message': str}
    """
    email = normalize_email(email)
    otp = OTPToken.objects.filter(
        email=email, code=code, is_used=False, expires_at__gt=timezone.now()
    ).order_by('-created_at').first()

    if not otp:
        return {'success': False, 'message': 'Invalid OTP or OTP expired.'}

    # Conditional update so a code can only be consumed once
    consumed = OTPToken.objects.filter(pk=otp.pk, is_used=False).update(is_used=True)
    if not consumed:
        return {'success': False, 'message': 'Invalid OTP or OTP expired.'}
    return {'success': True, 'message': 'OTP verified successfully!'}


def purge_expired_otps(older_than_hours=24):
    cutoff = timezone.now() - timedelta(hours=older_than_hours)
    deleted, _ = OTPToken.objects.filter(expires_at__lt=cutoff).delete()
    return deleted
