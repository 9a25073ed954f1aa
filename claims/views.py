"""
Claims API Views - public claim form and customer dashboard
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes, throttle_classes
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from accounts.permissions import IsCustomer
from claims.models import Claim
from claims.serializers import ActivationCodeSerializer, ClaimSubmitSerializer, CustomerClaimSerializer
from inventory.matcher import ClaimMatcher
from notifications.services import Notifier

logger = logging.getLogger(__name__)


class ActivationCodeThrottle(AnonRateThrottle):
    scope = 'activation_code'
    rate = '5/minute'


class ClaimSubmitThrottle(AnonRateThrottle):
    scope = 'claim_submit'
    rate = '10/minute'


@api_view(['POST'])
@permission_classes([AllowAny])
@parser_classes([MultiPartParser, FormParser, JSONParser])
@throttle_classes([ClaimSubmitThrottle])
def submit_claim(request):
    """
    Submit a new OTT claim. The claim starts with payment pending;
    the frontend then creates a Razorpay order for it.
    """
    serializer = ClaimSubmitSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    claim = serializer.save()
    logger.info(f'Claim submitted: {claim.claim_id} ({claim.email}, code={claim.activation_code})')

    Notifier().send(claim.email, 'claim_submitted', claim=claim)

    return Response({
        'success': True,
        'claim_id': claim.claim_id,
        'message': 'Claim submitted successfully',
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ActivationCodeThrottle])
def verify_activation_code(request):
    """Check an activation code before the customer fills in the rest of the form."""
    serializer = ActivationCodeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    matcher = ClaimMatcher()
    record = matcher.match(serializer.validated_data['activation_code'])
    if record is None:
        return Response({'success': False, 'error': 'Activation code not found.'}, status=status.HTTP_404_NOT_FOUND)
    if matcher.is_already_claimed(record):
        return Response(
            {'success': False, 'error': 'This activation code has already been claimed.'},
            status=status.HTTP_409_CONFLICT,
        )
    return Response({
        'success': True,
        'message': 'Activation code is valid and available.',
        'product': record.product,
        'product_sub_category': record.product_sub_category,
    })


@api_view(['GET'])
@permission_classes([IsCustomer])
def customer_claims(request):
    """Claims (and delivered codes) for the logged-in customer's email."""
    claims = Claim.objects.for_email(request.user.email).order_by('-created_at')
    return Response({
        'email': request.user.email,
        'count': claims.count(),
        'claims': CustomerClaimSerializer(claims, many=True).data,
    })
