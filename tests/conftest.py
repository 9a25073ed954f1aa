import itertools

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from accounts.authentication import generate_admin_token, generate_customer_token
from claims.models import Claim
from inventory.models import OTTKey, SalesRecord

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_claim(db):
    def _make(**kwargs):
        n = next(_seq)
        defaults = {
            'first_name': 'Asha',
            'last_name': 'Rao',
            'email': f'customer{n}@example.com',
            'phone': '9876543210',
            'activation_code': f'ACT-{n:04d}',
            'payment_status': Claim.PAYMENT_PAID,
            'ott_status': Claim.OTT_PENDING,
        }
        defaults.update(kwargs)
        return Claim.objects.create(**defaults)
    return _make


@pytest.fixture
def make_sales_record(db):
    def _make(activation_code=None, **kwargs):
        defaults = {
            'activation_code': activation_code or f'SALE-{next(_seq):04d}',
            'product': 'Smart TV 43"',
            'product_sub_category': 'OTTplay',
        }
        defaults.update(kwargs)
        return SalesRecord.objects.create(**defaults)
    return _make


@pytest.fixture
def make_key(db):
    def _make(activation_code=None, **kwargs):
        defaults = {
            'activation_code': activation_code or f'OTT-KEY-{next(_seq):04d}',
            'product': 'OTTplay',
            'product_sub_category': 'Premium 12M',
        }
        defaults.update(kwargs)
        return OTTKey.objects.create(**defaults)
    return _make


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(
        username='ops', email='ops@systechdigital.co.in', password='s3cret-pass', is_staff=True,
    )


@pytest.fixture
def admin_client(staff_user):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {generate_admin_token(staff_user)}')
    return client


@pytest.fixture
def customer_client():
    def _client(email):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {generate_customer_token(email)}')
        return client
    return _client


class RecordingNotifier:
    """Stands in for notifications.services.Notifier and keeps what was sent."""

    def __init__(self):
        self.sent = []

    def send(self, to, template, data=None, claim=None):
        self.sent.append({'to': to, 'template': template, 'data': data or {}, 'claim_id': getattr(claim, 'claim_id', '')})
        return {'success': True}

    def templates(self):
        return [item['template'] for item in self.sent]


@pytest.fixture
def notifier():
    return RecordingNotifier()
