"""
JWT Authentication for Systech

Two token types share one secret:
- 'admin': staff users (django.contrib.auth User with is_staff)
- 'customer': email verified by OTP, no user row behind it
"""

import jwt
import logging
from datetime import datetime, timedelta, timezone

from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = logging.getLogger(__name__)

TOKEN_ADMIN = 'admin'
TOKEN_CUSTOMER = 'customer'


class CustomerPrincipal:
    """Authenticated customer. Identified by email only."""

    is_authenticated = True
    is_anonymous = False
    is_staff = False
    is_superuser = False

    def __init__(self, email):
        self.email = email
        self.pk = email

    def __str__(self):
        return self.email


class JWTAuthentication(BaseAuthentication):
    def authenticate_header(self, request):
        return 'Bearer'

    def authenticate(self, request):
        auth_header = request.headers.get('Authorization', '')

        if not auth_header.startswith('Bearer '):
            return None

        token = auth_header[7:]
        payload = decode_token(token)

        if payload.get('type') == TOKEN_CUSTOMER:
            email = payload.get('email')
            if not email:
                raise AuthenticationFailed('Invalid token')
            return (CustomerPrincipal(email), token)

        if payload.get('type') == TOKEN_ADMIN:
            User = get_user_model()
            try:
                user = User.objects.get(pk=payload['user_id'], is_active=True)
            except (User.DoesNotExist, KeyError, ValueError):
                raise AuthenticationFailed('User not found')
            return (user, token)

        raise AuthenticationFailed('Invalid token type')


def decode_token(token):
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed('Token has expired')
    except jwt.InvalidTokenError:
        raise AuthenticationFailed('Invalid token')


def generate_admin_token(user):
    payload = {
        'user_id': str(user.pk),
        'exp': datetime.now(timezone.utc) + timedelta(hours=settings.JWT_ADMIN_TOKEN_LIFETIME_HOURS),
        'iat': datetime.now(timezone.utc),
        'type': TOKEN_ADMIN,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm='HS256')


def generate_customer_token(email):
    payload = {
        'email': email,
        'exp': datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_LIFETIME_MINUTES),
        'iat': datetime.now(timezone.utc),
        'type': TOKEN_CUSTOMER,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm='HS256')
