"""
Payment API Views & Webhook Handler

Security:
- Checkout confirmations are accepted only with a valid Razorpay signature
- Webhooks are accepted only with a valid X-Razorpay-Signature over the raw body
- Order creation is limited per claim (attempts + cooldown)
"""

import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from claims.models import Claim
from payments.serializers import ClaimReferenceSerializer, VerifyPaymentSerializer
from payments.services import (
    check_payment_attempts, create_order, mark_claim_paid,
    process_razorpay_webhook, verify_payment_signature, verify_webhook_signature,
)

logger = logging.getLogger(__name__)


class OrderThrottle(AnonRateThrottle):
    scope = 'payment_order'
    rate = '10/min'


def _get_claim(claim_id):
    return Claim.objects.filter(claim_id=claim_id).first()


@api_view(['GET'])
@permission_classes([AllowAny])
def razorpay_key(request):
    """Public Razorpay key id and fee for the checkout widget."""
    return Response({'key_id': settings.RAZORPAY_KEY_ID, 'amount': settings.CLAIM_FEE_PAISE, 'currency': 'INR'})


@api_view(['POST'])
@permission_classes([AllowAny])
def check_attempts(request):
    serializer = ClaimReferenceSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    claim = _get_claim(serializer.validated_data['claim_id'])
    if not claim:
        return Response({'error': 'Claim not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response({'success': True, **check_payment_attempts(claim.claim_id)})


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([OrderThrottle])
def create_order_view(request):
    serializer = ClaimReferenceSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    claim = _get_claim(serializer.validated_data['claim_id'])
    if not claim:
        return Response({'error': 'Claim not found'}, status=status.HTTP_404_NOT_FOUND)

    success, result = create_order(claim)
    if success:
        return Response({'success': True, 'order': result}, status=status.HTTP_201_CREATED)

    if claim.payment_status == Claim.PAYMENT_PAID:
        code = status.HTTP_409_CONFLICT
    elif not check_payment_attempts(claim.claim_id)['can_attempt_payment']:
        code = status.HTTP_429_TOO_MANY_REQUESTS
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return Response({'success': False, 'error': result}, status=code)


@api_view(['POST'])
@permission_classes([AllowAny])
def verify_payment(request):
    """Confirm a checkout payment with the signature from Razorpay's handler callback."""
    serializer = VerifyPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    claim = _get_claim(data['claim_id'])
    if not claim:
        return Response({'error': 'Claim not found'}, status=status.HTTP_404_NOT_FOUND)

    if claim.razorpay_order_id and claim.razorpay_order_id != data['razorpay_order_id']:
        logger.warning(f'Order mismatch on verify for claim {claim.claim_id}: {data["razorpay_order_id"]}')
        return Response({'error': 'Order does not belong to this claim'}, status=status.HTTP_400_BAD_REQUEST)

    if not verify_payment_signature(data['razorpay_order_id'], data['razorpay_payment_id'], data['razorpay_signature']):
        logger.warning(f'Invalid payment signature for claim {claim.claim_id}')
        return Response({'error': 'Invalid payment signature'}, status=status.HTTP_400_BAD_REQUEST)

    newly_paid = mark_claim_paid(
        claim, data['razorpay_payment_id'], order_id=data['razorpay_order_id'], source='checkout',
    )
    claim.refresh_from_db()
    return Response({
        'success': True,
        'claim_id': claim.claim_id,
        'payment_status': claim.payment_status,
        'ott_status': claim.ott_status,
        'message': 'Payment verified' if newly_paid else 'Payment already recorded',
    })


@csrf_exempt
@require_POST
def razorpay_webhook(request):
    """Handle Razorpay webhooks (payment.captured, order.paid, payment.failed)."""
    signature = request.headers.get('X-Razorpay-Signature', '')
    if not verify_webhook_signature(request.body, signature):
        logger.warning('Razorpay webhook rejected: bad signature')
        return JsonResponse({'error': 'Invalid signature'}, status=400)

    try:
        data = json.loads(request.body)
    except ValueError:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    logger.info(f'Razorpay webhook: {data.get("event")}')
    try:
        handled = process_razorpay_webhook(data)
    except Exception as e:
        logger.error(f'Razorpay webhook error: {e}', exc_info=True)
        return JsonResponse({'error': 'Processing failed'}, status=500)
    return JsonResponse({'status': 'success' if handled else 'ignored'})
