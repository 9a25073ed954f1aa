import hashlib
import hmac
import json
from unittest import mock

import pytest
import requests
from django.core import mail

from claims.models import Claim
from payments.models import PaymentTransaction
from payments.services import (
    check_payment_attempts, create_order, mark_claim_paid, process_razorpay_webhook,
    sync_pending_payments, verify_payment_signature, verify_webhook_signature,
)


def sign(message, secret):
    return hmac.new(secret.encode(), message.encode() if isinstance(message, str) else message, hashlib.sha256).hexdigest()


def fake_response(payload, status_code=200):
    response = mock.Mock(status_code=status_code)
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def unpaid_claim(make_claim):
    return make_claim(
        payment_status=Claim.PAYMENT_PENDING, ott_status=Claim.OTT_NOT_STARTED, razorpay_order_id='order_abc',
    )


def test_checkout_signature(settings):
    good = sign('order_1|pay_1', settings.RAZORPAY_KEY_SECRET)
    assert verify_payment_signature('order_1', 'pay_1', good)
    assert not verify_payment_signature('order_1', 'pay_2', good)
    assert not verify_payment_signature('order_1', 'pay_1', '')


def test_webhook_signature(settings):
    body = b'{"event":"payment.captured"}'
    assert verify_webhook_signature(body, sign(body, settings.RAZORPAY_WEBHOOK_SECRET))
    assert not verify_webhook_signature(body, sign(body, 'wrong'))
    settings.RAZORPAY_WEBHOOK_SECRET = ''
    assert not verify_webhook_signature(body, 'anything')


@pytest.mark.django_db
def test_mark_paid_moves_claim_and_queues_fulfillment(unpaid_claim, django_capture_on_commit_callbacks):
    with mock.patch('automation.tasks.task_process_claim.delay') as delay:
        with django_capture_on_commit_callbacks(execute=True):
            assert mark_claim_paid(unpaid_claim, 'pay_1', order_id='order_abc') is True

    delay.assert_called_once_with(unpaid_claim.claim_id)
    unpaid_claim.refresh_from_db()
    assert unpaid_claim.payment_status == Claim.PAYMENT_PAID
    assert unpaid_claim.ott_status == Claim.OTT_PENDING
    assert unpaid_claim.payment_id == 'pay_1'
    assert unpaid_claim.paid_at is not None

    txn = PaymentTransaction.objects.get(razorpay_payment_id='pay_1')
    assert txn.claim == unpaid_claim
    assert txn.amount == 9900
    assert [m.subject for m in mail.outbox] == [f'Payment Successful - {unpaid_claim.claim_id}']


@pytest.mark.django_db
def test_mark_paid_is_idempotent(unpaid_claim):
    assert mark_claim_paid(unpaid_claim, 'pay_1') is True
    assert mark_claim_paid(unpaid_claim, 'pay_1', source='webhook') is False
    assert PaymentTransaction.objects.count() == 1
    assert len(mail.outbox) == 1


@pytest.mark.django_db
def test_create_order_calls_razorpay(unpaid_claim, settings):
    with mock.patch('payments.services.requests.post', return_value=fake_response({'id': 'order_new', 'amount': 9900})) as post:
        success, order = create_order(unpaid_claim)

    assert success is True
    assert order['order_id'] == 'order_new'
    assert order['key_id'] == settings.RAZORPAY_KEY_ID
    assert post.call_args.kwargs['json']['notes']['claim_id'] == unpaid_claim.claim_id
    assert post.call_args.kwargs['timeout'] == 30
    unpaid_claim.refresh_from_db()
    assert unpaid_claim.razorpay_order_id == 'order_new'


@pytest.mark.django_db
def test_create_order_attempt_limit(unpaid_claim, settings):
    settings.PAYMENT_MAX_ATTEMPTS = 2
    with mock.patch('payments.services.requests.post', return_value=fake_response({'id': 'order_x'})):
        assert create_order(unpaid_claim)[0] is True
        assert create_order(unpaid_claim)[0] is True
        success, error = create_order(unpaid_claim)

    assert success is False
    assert 'maximum payment attempts' in error
    assert check_payment_attempts(unpaid_claim.claim_id)['in_cooldown'] is True


@pytest.mark.django_db
def test_create_order_gateway_error(unpaid_claim):
    with mock.patch('payments.services.requests.post', side_effect=requests.exceptions.Timeout('slow')):
        success, error = create_order(unpaid_claim)
    assert success is False
    assert error == 'Payment service temporarily unavailable.'


@pytest.mark.django_db
def test_create_order_refuses_paid_claim(make_claim):
    success, error = create_order(make_claim())
    assert success is False
    assert error == 'This claim has already been paid.'


@pytest.mark.django_db
def test_webhook_captured_marks_paid(unpaid_claim):
    event = {
        'event': 'payment.captured',
        'payload': {'payment': {'entity': {'id': 'pay_wh', 'order_id': 'order_abc', 'amount': 9900}}},
    }
    assert process_razorpay_webhook(event) is True
    unpaid_claim.refresh_from_db()
    assert unpaid_claim.payment_status == Claim.PAYMENT_PAID
    assert PaymentTransaction.objects.get(razorpay_payment_id='pay_wh').source == 'webhook'


@pytest.mark.django_db
def test_webhook_finds_claim_by_notes(make_claim):
    claim = make_claim(payment_status=Claim.PAYMENT_PENDING)
    event = {
        'event': 'order.paid',
        'payload': {'payment': {'entity': {'id': 'pay_n', 'order_id': 'order_unknown', 'notes': {'claim_id': claim.claim_id}}}},
    }
    assert process_razorpay_webhook(event) is True
    claim.refresh_from_db()
    assert claim.payment_status == Claim.PAYMENT_PAID


@pytest.mark.django_db
def test_webhook_failed_and_unknown_events(unpaid_claim):
    failed = {'event': 'payment.failed', 'payload': {'payment': {'entity': {'id': 'pay_f', 'order_id': 'order_abc'}}}}
    assert process_razorpay_webhook(failed) is True
    unpaid_claim.refresh_from_db()
    assert unpaid_claim.payment_status == Claim.PAYMENT_FAILED

    assert process_razorpay_webhook({'event': 'refund.created', 'payload': {}}) is True
    assert process_razorpay_webhook({'event': 'payment.captured', 'payload': {}}) is False


@pytest.mark.django_db
def test_late_capture_after_failure_still_pays(unpaid_claim):
    Claim.objects.filter(pk=unpaid_claim.pk).update(payment_status=Claim.PAYMENT_FAILED)
    unpaid_claim.refresh_from_db()
    assert mark_claim_paid(unpaid_claim, 'pay_late', source='webhook') is True


@pytest.mark.django_db
def test_sync_fixes_captured_orders(make_claim):
    captured = make_claim(payment_status=Claim.PAYMENT_PENDING, razorpay_order_id='order_cap')
    waiting = make_claim(payment_status=Claim.PAYMENT_PENDING, razorpay_order_id='order_wait')
    make_claim(payment_status=Claim.PAYMENT_PENDING)  # no order yet, not checked

    def fake_get(url, auth=None, timeout=None):
        if 'order_cap' in url:
            return fake_response({'items': [{'id': 'pay_sync', 'status': 'captured', 'amount': 9900}]})
        return fake_response({'items': [{'id': 'pay_try', 'status': 'failed'}]})

    with mock.patch('payments.services.requests.get', side_effect=fake_get):
        result = sync_pending_payments()

    assert result['checked'] == 2
    assert result['fixed'] == 1
    captured.refresh_from_db()
    waiting.refresh_from_db()
    assert captured.payment_status == Claim.PAYMENT_PAID
    assert waiting.payment_status == Claim.PAYMENT_PENDING


@pytest.mark.django_db
def test_webhook_endpoint_checks_signature(client, unpaid_claim, settings):
    body = json.dumps({
        'event': 'payment.captured',
        'payload': {'payment': {'entity': {'id': 'pay_http', 'order_id': 'order_abc'}}},
    })

    rejected = client.post('/api/payments/webhook/', body, content_type='application/json',
                           HTTP_X_RAZORPAY_SIGNATURE='bad')
    assert rejected.status_code == 400

    accepted = client.post('/api/payments/webhook/', body, content_type='application/json',
                           HTTP_X_RAZORPAY_SIGNATURE=sign(body, settings.RAZORPAY_WEBHOOK_SECRET))
    assert accepted.status_code == 200
    assert accepted.json() == {'status': 'success'}
    unpaid_claim.refresh_from_db()
    assert unpaid_claim.payment_status == Claim.PAYMENT_PAID


@pytest.mark.django_db
def test_verify_endpoint(api_client, unpaid_claim, settings):
    payload = {
        'claim_id': unpaid_claim.claim_id,
        'razorpay_order_id': 'order_abc',
        'razorpay_payment_id': 'pay_v',
        'razorpay_signature': 'forged',
    }
    assert api_client.post('/api/payments/verify/', payload, format='json').status_code == 400

    payload['razorpay_signature'] = sign('order_abc|pay_v', settings.RAZORPAY_KEY_SECRET)
    response = api_client.post('/api/payments/verify/', payload, format='json')
    assert response.status_code == 200
    assert response.data['payment_status'] == Claim.PAYMENT_PAID
