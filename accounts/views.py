"""
Accounts API Views - customer email OTP login
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from accounts.authentication import generate_customer_token
from accounts.otp_service import normalize_email, send_otp, verify_otp
from accounts.serializers import SendOTPSerializer, VerifyOTPSerializer

logger = logging.getLogger(__name__)


class OTPThrottle(AnonRateThrottle):
    scope = 'otp'
    rate = '3/minute'


class OTPVerifyThrottle(AnonRateThrottle):
    scope = 'otp_verify'
    rate = '5/minute'


def get_client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '')


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([OTPThrottle])
def send_otp_view(request):
    """Email a login OTP to a customer who has at least one claim."""
    serializer = SendOTPSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = send_otp(serializer.validated_data['email'], ip_address=get_client_ip(request))
    if result['success']:
        return Response({'message': result['message']}, status=status.HTTP_200_OK)
    return Response({'error': result['message']}, status=result['status'])


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([OTPVerifyThrottle])
def verify_otp_view(request):
    serializer = VerifyOTPSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    email = normalize_email(serializer.validated_data['email'])
    result = verify_otp(email, serializer.validated_data['otp'])
    if not result['success']:
        return Response({'error': result['message']}, status=status.HTTP_401_UNAUTHORIZED)

    logger.info(f'Customer login: {email}')
    return Response({
        'message': result['message'],
        'access_token': generate_customer_token(email),
        'email': email,
    })
