"""
Customer notifications - email (Django mail, Gmail SMTP) and WhatsApp (Meta Cloud API).

Notifications are best effort: send() never raises, so a mail outage can
never undo or block a claim state change. Every attempt is logged to
NotificationLog.
"""

import logging
import re

import requests
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.html import strip_tags

from notifications.models import NotificationLog

logger = logging.getLogger(__name__)

SUBJECTS = {
    'claim_submitted': 'OTT Claim Submitted - {claim_id}',
    'payment_success': 'Payment Successful - {claim_id}',
    'automation_success': 'Your OTT Access Code is Ready! - {claim_id}',
    'automation_failed': 'OTT Claim Status Update - {claim_id}',
    'otp': 'Your SYSTECH DIGITAL login code',
    'custom': '{subject}',
}

FAILURE_REASONS = {
    'activation_code_not_found': 'We could not find your activation code in our sales records.',
    'already_claimed': 'This activation code has already been used for another claim.',
    'no_key_available': 'OTT codes for your platform are temporarily out of stock.',
}

# Templates that also go out on WhatsApp when the claim has a phone number
WHATSAPP_TEMPLATES = {'automation_success', 'automation_failed'}


def claim_context(claim):
    return {
        'claim_id': claim.claim_id,
        'first_name': claim.first_name,
        'last_name': claim.last_name,
        'full_name': claim.full_name,
        'email': claim.email,
        'activation_code': claim.activation_code,
        'purchase_type': claim.get_purchase_type_display(),
        'payment_id': claim.payment_id,
        'platform': claim.platform or '',
        'ott_code': claim.ott_code or '',
    }


def format_whatsapp_number(phone):
    """Digits only, with the India country code added to bare 10-digit numbers."""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) == 10:
        digits = '91' + digits
    return digits


class Notifier:

    def send(self, to, template, data=None, claim=None):
        """
        Send `template` to `to`. Returns {'success': bool} for the email channel.
        WhatsApp delivery is attempted alongside and only logged.
        """
        context = claim_context(claim) if claim is not None else {}
        context.update(data or {})
        context.setdefault('claim_id', '')
        context.setdefault('support_email', settings.SUPPORT_EMAIL)
        context.setdefault('fee_rupees', settings.CLAIM_FEE_PAISE // 100)
        if template == 'automation_failed':
            reason = context.get('reason', '')
            context['reason_text'] = FAILURE_REASONS.get(reason, reason)

        try:
            subject = SUBJECTS.get(template, 'SYSTECH DIGITAL').format(**context)
        except KeyError:
            subject = 'SYSTECH DIGITAL'

        success, error = self._send_email(to, subject, template, context)
        self._log(to, 'email', template, subject, context['claim_id'], success, error)

        if claim is not None and claim.phone and template in WHATSAPP_TEMPLATES:
            wa_success, wa_error = self._send_whatsapp(claim.phone, template, context)
            if wa_success is not None:
                self._log(claim.phone, 'whatsapp', template, '', context['claim_id'], wa_success, wa_error)

        return {'success': success}

    def _send_email(self, to, subject, template, context):
        try:
            html_body = render_to_string(f'emails/{template}.html', context)
            message = EmailMultiAlternatives(
                subject=subject,
                body=strip_tags(html_body),
                from_email=settings.DEFAULT_FROM_EMAIL,
                to=[to],
            )
            message.attach_alternative(html_body, 'text/html')
            message.send(fail_silently=False)
            logger.info(f'Email "{template}" sent to {to} (claim={context["claim_id"] or "-"})')
            return True, ''
        except Exception as e:
            logger.error(f'Email "{template}" to {to} failed: {e}', exc_info=True)
            return False, str(e)

    def _send_whatsapp(self, phone, template, context):
        """Returns (success, error), or (None, '') when WhatsApp is not configured."""
        access_token = settings.WHATSAPP_ACCESS_TOKEN
        phone_number_id = settings.WHATSAPP_PHONE_NUMBER_ID
        if not access_token or not phone_number_id:
            logger.debug('WhatsApp not configured, skipping')
            return None, ''

        to = format_whatsapp_number(phone)
        payload = {
            'messaging_product': 'whatsapp',
            'recipient_type': 'individual',
            'to': to,
            'type': 'text',
            'text': {'body': self._whatsapp_body(template, context)},
        }
        url = f'{settings.WHATSAPP_API_URL}/{phone_number_id}/messages'
        headers = {
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json',
        }
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=15)
            if response.status_code in [200, 201]:
                logger.info(f'WhatsApp "{template}" sent to {to[:6]}***')
                return True, ''
            logger.warning(f'WhatsApp "{template}" failed: {response.status_code} {response.text[:300]}')
            return False, f'HTTP {response.status_code}'
        except requests.RequestException as e:
            logger.warning(f'WhatsApp "{template}" error: {e}')
            return False, str(e)

    def _whatsapp_body(self, template, context):
        processed = timezone.localtime().strftime('%d %b %Y, %I:%M %p')
        if template == 'automation_success':
            return (
                f'*Your OTT Code is Ready!*\n\n'
                f'Dear {context["full_name"]},\n\n'
                f'Your OTT subscription claim has been processed successfully.\n\n'
                f'*{context["platform"]} Activation Code:*\n*{context["ott_code"]}*\n\n'
                f'*Claim ID:* {context["claim_id"]}\n*Processed:* {processed}\n\n'
                f'For support: {context["support_email"]}\n\n'
                f'Thank you for choosing SYSTECH DIGITAL!'
            )
        return (
            f'*OTT Code Processing Issue*\n\n'
            f'Dear {context["full_name"]},\n\n'
            f'*Issue:* {context.get("reason_text", "")}\n'
            f'*Claim ID:* {context["claim_id"]}\n\n'
            f'Our team has been notified and your payment is secure.\n'
            f'Need help? {context["support_email"]}\n\n'
            f'SYSTECH DIGITAL Support Team'
        )

    def _log(self, recipient, channel, template, subject, claim_id, success, error):
        try:
            NotificationLog.objects.create(
                recipient=recipient, channel=channel, template=template,
                subject=subject[:255], claim_id=claim_id or '', success=success, error=error,
            )
        except Exception as e:
            logger.error(f'Could not record notification log for {recipient}: {e}')
