import random
import string

from django.db import models
from django.db.models import Q


def generate_claim_id():
    return 'CLM-' + ''.join(random.choices(string.ascii_uppercase + string.digits, k=10))


class ClaimQuerySet(models.QuerySet):
    def eligible(self):
        """Paid claims still waiting for (or retrying) key delivery."""
        return self.filter(
            payment_status=Claim.PAYMENT_PAID,
            ott_status__in=Claim.ELIGIBLE_OTT_STATUSES,
        )

    def for_email(self, email):
        return self.filter(email__iexact=email)


class Claim(models.Model):
    PAYMENT_PENDING = 'pending'
    PAYMENT_PAID = 'paid'
    PAYMENT_FAILED = 'failed'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_FAILED, 'Failed'),
    ]

    OTT_NOT_STARTED = 'not_started'
    OTT_PENDING = 'pending'
    OTT_DELIVERED = 'delivered'
    OTT_FAILED = 'failed'
    OTT_NOT_FOUND = 'activation_code_not_found'
    OTT_ALREADY_CLAIMED = 'already_claimed'
    OTT_NO_KEY = 'no_key_available'
    OTT_STATUS_CHOICES = [
        (OTT_NOT_STARTED, 'Not Started'),
        (OTT_PENDING, 'Pending'),
        (OTT_DELIVERED, 'Delivered'),
        (OTT_FAILED, 'Failed'),
        (OTT_NOT_FOUND, 'Activation Code Not Found'),
        (OTT_ALREADY_CLAIMED, 'Already Claimed'),
        (OTT_NO_KEY, 'No Key Available'),
    ]

    # Unknown codes are retried each sweep: the sales ledger may be uploaded after the claim
    ELIGIBLE_OTT_STATUSES = [OTT_PENDING, OTT_NOT_FOUND]
    # States an admin can push back to pending with a manual reprocess
    REPROCESSABLE_OTT_STATUSES = [OTT_NO_KEY, OTT_FAILED, OTT_ALREADY_CLAIMED, OTT_NOT_FOUND]

    PURCHASE_TYPE_CHOICES = [
        ('online', 'Online'),
        ('offline', 'Offline / In-store'),
    ]

    claim_id = models.CharField(max_length=20, unique=True, default=generate_claim_id, editable=False)

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    email = models.EmailField(db_index=True)
    phone = models.CharField(max_length=20)
    street_address = models.CharField(max_length=255, blank=True, default='')
    address_line2 = models.CharField(max_length=255, blank=True, default='')
    city = models.CharField(max_length=100, blank=True, default='')
    state = models.CharField(max_length=100, blank=True, default='')
    postal_code = models.CharField(max_length=20, blank=True, default='')
    country = models.CharField(max_length=100, default='India')

    purchase_type = models.CharField(max_length=20, choices=PURCHASE_TYPE_CHOICES, default='online')
    purchase_date = models.DateField(null=True, blank=True)
    invoice_number = models.CharField(max_length=100, blank=True, default='')
    seller_name = models.CharField(max_length=200, blank=True, default='')
    bill_file = models.FileField(upload_to='bills/%Y/%m/', null=True, blank=True)
    activation_code = models.CharField(max_length=100)

    payment_status = models.CharField(
        max_length=10, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING, db_index=True
    )
    payment_id = models.CharField(max_length=100, blank=True, default='')
    razorpay_order_id = models.CharField(max_length=100, blank=True, default='', db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    ott_status = models.CharField(
        max_length=30, choices=OTT_STATUS_CHOICES, default=OTT_PENDING, db_index=True
    )
    ott_code = models.CharField(max_length=200, null=True, blank=True)
    platform = models.CharField(max_length=200, null=True, blank=True)
    ott_assigned_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ClaimQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payment_status', 'ott_status']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(ott_status='delivered', ott_code__isnull=False)
                    | (~Q(ott_status='delivered') & Q(ott_code__isnull=True))
                ),
                name='claim_ott_code_only_when_delivered',
            ),
        ]

    def __str__(self):
        return f'{self.claim_id} ({self.email}) - {self.payment_status}/{self.ott_status}'

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip()

    @property
    def is_eligible(self):
        return (
            self.payment_status == self.PAYMENT_PAID
            and self.ott_status in self.ELIGIBLE_OTT_STATUSES
        )
