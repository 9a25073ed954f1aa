"""
Systech Payment Services
Razorpay REST adapter (orders, signature checks, webhooks, reconciliation).
"""

import hashlib
import hmac
import logging
from datetime import timedelta

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.rate_limit import ExpiringCounter
from claims.models import Claim

logger = logging.getLogger(__name__)


def _auth():
    return (settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)


def _is_configured():
    return bool(settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET)


# ==================== Attempt limiting ====================

def payment_attempt_counter():
    return ExpiringCounter(
        'payment', settings.PAYMENT_MAX_ATTEMPTS, settings.PAYMENT_COOLDOWN_MINUTES * 60,
    )


def check_payment_attempts(claim_id):
    counter = payment_attempt_counter()
    count = counter.count(claim_id)
    if count >= counter.limit:
        return {
            'can_attempt_payment': False,
            'in_cooldown': True,
            'attempt_count': count,
            'remaining_attempts': 0,
            'cooldown_minutes': settings.PAYMENT_COOLDOWN_MINUTES,
            'message': (
                f'You have exceeded the maximum payment attempts. '
                f'Please wait up to {settings.PAYMENT_COOLDOWN_MINUTES} minutes before trying again.'
            ),
        }
    return {
        'can_attempt_payment': True,
        'in_cooldown': False,
        'attempt_count': count,
        'remaining_attempts': counter.limit - count,
    }


# ==================== Orders ====================

def create_order(claim):
    """
    Create a Razorpay order for the claim's processing fee.
    Returns: (success, result_dict_or_error)
    """
    if claim.payment_status == Claim.PAYMENT_PAID:
        return False, 'This claim has already been paid.'
    if not _is_configured():
        logger.error('Razorpay credentials not configured')
        return False, 'Payment service is not configured.'

    attempts = check_payment_attempts(claim.claim_id)
    if not attempts['can_attempt_payment']:
        return False, attempts['message']
    payment_attempt_counter().hit(claim.claim_id)

    payload = {
        'amount': settings.CLAIM_FEE_PAISE,
        'currency': 'INR',
        'receipt': f'receipt_{claim.claim_id}',
        'notes': {
            'claim_id': claim.claim_id,
            'customer_name': claim.full_name,
            'customer_email': claim.email,
            'customer_phone': claim.phone,
        },
    }

    try:
        response = requests.post(f'{settings.RAZORPAY_API_URL}/orders', json=payload, auth=_auth(), timeout=30)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f'Razorpay order error for claim {claim.claim_id}: {e}')
        return False, 'Payment service temporarily unavailable.'
    except ValueError:
        logger.error(f'Razorpay returned a non-JSON order response for claim {claim.claim_id}')
        return False, 'Payment service temporarily unavailable.'

    order_id = data.get('id')
    if not order_id:
        logger.error(f'Razorpay order response missing id for claim {claim.claim_id}: {data}')
        return False, 'Failed to create payment order.'

    Claim.objects.filter(pk=claim.pk).update(razorpay_order_id=order_id, updated_at=timezone.now())
    logger.info(f'Razorpay order {order_id} created for claim {claim.claim_id}')
    return True, {
        'order_id': order_id,
        'amount': data.get('amount', settings.CLAIM_FEE_PAISE),
        'currency': data.get('currency', 'INR'),
        'key_id': settings.RAZORPAY_KEY_ID,
        'claim_id': claim.claim_id,
    }


def fetch_order_payments(order_id):
    response = requests.get(f'{settings.RAZORPAY_API_URL}/orders/{order_id}/payments', auth=_auth(), timeout=30)
    response.raise_for_status()
    return response.json().get('items', [])


# ==================== Signatures ====================

def verify_payment_signature(order_id, payment_id, signature):
    """Checkout handler signature: HMAC-SHA256(order_id|payment_id, key_secret)."""
    if not (order_id and payment_id and signature and settings.RAZORPAY_KEY_SECRET):
        return False
    expected = hmac.new(
        settings.RAZORPAY_KEY_SECRET.encode('utf-8'),
        f'{order_id}|{payment_id}'.encode('utf-8'),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(body, signature):
    """Webhook signature: HMAC-SHA256(raw body, webhook secret)."""
    if not (signature and settings.RAZORPAY_WEBHOOK_SECRET):
        return False
    if isinstance(body, str):
        body = body.encode('utf-8')
    expected = hmac.new(settings.RAZORPAY_WEBHOOK_SECRET.encode('utf-8'), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


# ==================== Claim payment state ====================

def mark_claim_paid(claim, payment_id, order_id='', source='checkout', amount=None, gateway_response=None):
    """
    Move a claim to paid and queue it for fulfillment.
    Returns True if this call made the transition, False if the claim was already paid.
    """
    from automation.tasks import task_process_claim
    from notifications.services import Notifier
    from payments.models import PaymentTransaction

    now = timezone.now()
    with transaction.atomic():
        updated = Claim.objects.filter(
            pk=claim.pk, payment_status__in=[Claim.PAYMENT_PENDING, Claim.PAYMENT_FAILED],
        ).update(
            payment_status=Claim.PAYMENT_PAID,
            payment_id=payment_id,
            razorpay_order_id=order_id or claim.razorpay_order_id,
            paid_at=now,
            updated_at=now,
        )
        if not updated:
            logger.info(f'Claim {claim.claim_id} already paid, ignoring {source} confirmation {payment_id}')
            return False

        Claim.objects.filter(pk=claim.pk, ott_status=Claim.OTT_NOT_STARTED).update(ott_status=Claim.OTT_PENDING)
        PaymentTransaction.objects.update_or_create(
            razorpay_payment_id=payment_id,
            defaults={
                'razorpay_order_id': order_id or claim.razorpay_order_id,
                'claim': claim,
                'amount': amount if amount is not None else settings.CLAIM_FEE_PAISE,
                'status': 'captured',
                'email': claim.email,
                'source': source,
                'gateway_response': gateway_response or {},
            },
        )
        claim_id = claim.claim_id
        transaction.on_commit(lambda: task_process_claim.delay(claim_id))

    claim.refresh_from_db()
    payment_attempt_counter().reset(claim.claim_id)
    logger.info(f'Claim {claim.claim_id} marked paid via {source} (payment={payment_id})')
    Notifier().send(claim.email, 'payment_success', claim=claim)
    return True


def mark_claim_failed(claim, reason=''):
    updated = Claim.objects.filter(pk=claim.pk, payment_status=Claim.PAYMENT_PENDING).update(
        payment_status=Claim.PAYMENT_FAILED, updated_at=timezone.now(),
    )
    if updated:
        logger.info(f'Claim {claim.claim_id} payment failed: {reason or "no reason given"}')
    return bool(updated)


def _claim_for_payment(entity):
    order_id = entity.get('order_id') or ''
    claim = None
    if order_id:
        claim = Claim.objects.filter(razorpay_order_id=order_id).first()
    if claim is None:
        claim_id = (entity.get('notes') or {}).get('claim_id')
        if claim_id:
            claim = Claim.objects.filter(claim_id=claim_id).first()
    return claim


def process_razorpay_webhook(webhook_data):
    """Process a verified Razorpay webhook. Returns True when the event was understood."""
    event = webhook_data.get('event', '')
    payload = webhook_data.get('payload', {})
    payment = (payload.get('payment') or {}).get('entity') or {}

    if event in ('payment.captured', 'order.paid'):
        if not payment.get('id'):
            logger.warning(f'Razorpay {event} without a payment entity')
            return False
        claim = _claim_for_payment(payment)
        if claim is None:
            logger.warning(f'Razorpay {event}: no claim for order {payment.get("order_id")}')
            return False
        mark_claim_paid(
            claim, payment.get('id', ''), order_id=payment.get('order_id', ''),
            source='webhook', amount=payment.get('amount'), gateway_response=payment,
        )
        return True

    if event == 'payment.failed':
        claim = _claim_for_payment(payment)
        if claim is None:
            return False
        mark_claim_failed(claim, payment.get('error_description', ''))
        return True

    logger.info(f'Ignoring Razorpay webhook event {event}')
    return True


# ==================== Reconciliation ====================

def sync_pending_payments():
    """
    Ask Razorpay about recent pending claims that have an order, and mark
    any with a captured payment as paid. Catches payments whose browser
    callback never reached us.
    """
    if not _is_configured():
        logger.error('Razorpay credentials not configured, skipping payment sync')
        return {'success': False, 'error': 'Razorpay credentials not configured', 'checked': 0, 'fixed': 0, 'results': []}

    since = timezone.now() - timedelta(days=settings.PAYMENT_SYNC_LOOKBACK_DAYS)
    pending = Claim.objects.filter(
        payment_status=Claim.PAYMENT_PENDING, created_at__gte=since,
    ).exclude(razorpay_order_id='')

    checked, fixed, results = 0, 0, []
    for claim in pending:
        checked += 1
        try:
            payments = fetch_order_payments(claim.razorpay_order_id)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f'Payment sync: could not fetch order {claim.razorpay_order_id} for {claim.claim_id}: {e}')
            results.append({'claim_id': claim.claim_id, 'status': 'error', 'error': str(e)})
            continue

        captured = next((p for p in payments if p.get('status') == 'captured'), None)
        if captured is None:
            results.append({'claim_id': claim.claim_id, 'status': 'still_pending'})
            continue

        if mark_claim_paid(
            claim, captured['id'], order_id=claim.razorpay_order_id,
            source='sync', amount=captured.get('amount'), gateway_response=captured,
        ):
            fixed += 1
            results.append({'claim_id': claim.claim_id, 'status': 'fixed', 'payment_id': captured['id']})

    if checked:
        logger.info(f'Payment sync: checked {checked} pending claim(s), fixed {fixed}')
    return {'success': True, 'checked': checked, 'fixed': fixed, 'results': results}
