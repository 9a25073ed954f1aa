import re
import uuid

from django.db import models
from django.db.models import Q


def normalize_activation_code(code):
    """
    Canonical form used to compare activation codes typed by customers
    against the sales ledger: trimmed, uppercased, no whitespace or hyphens.
    """
    if code is None:
        return ''
    return re.sub(r'[\s\-]+', '', str(code)).upper()


class SalesRecord(models.Model):
    """Proof of an eligible purchase. One activation code can be claimed once."""
    AVAILABLE = 'available'
    CLAIMED = 'claimed'
    STATUS_CHOICES = [
        (AVAILABLE, 'Available'),
        (CLAIMED, 'Claimed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    activation_code = models.CharField(max_length=100, unique=True)
    normalized_code = models.CharField(max_length=100, db_index=True, blank=True, default='', editable=False)
    product = models.CharField(max_length=200)
    product_sub_category = models.CharField(max_length=200)
    sale_date = models.DateField(null=True, blank=True)
    customer_email = models.EmailField(blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=AVAILABLE, db_index=True)
    claimed_by = models.EmailField(null=True, blank=True)
    claimed_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status='claimed', claimed_by__isnull=False)
                    | Q(status='available', claimed_by__isnull=True)
                ),
                name='salesrecord_claimed_by_matches_status',
            ),
        ]

    def __str__(self):
        return f'{self.activation_code} - {self.product} ({self.status})'

    def save(self, *args, **kwargs):
        self.normalized_code = normalize_activation_code(self.activation_code)
        super().save(*args, **kwargs)


class OTTKey(models.Model):
    """A redeemable OTT credential drawn from inventory and delivered to a customer."""
    AVAILABLE = 'available'
    ASSIGNED = 'assigned'
    USED = 'used'
    STATUS_CHOICES = [
        (AVAILABLE, 'Available'),
        (ASSIGNED, 'Assigned'),
        (USED, 'Used'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    activation_code = models.CharField(max_length=200, unique=True)
    product = models.CharField(max_length=200, help_text='OTT platform, e.g. "OTTplay"')
    product_sub_category = models.CharField(max_length=200)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=AVAILABLE, db_index=True)
    assigned_email = models.EmailField(null=True, blank=True, db_index=True)
    assigned_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'OTT key'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['status', 'product']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status='available', assigned_email__isnull=True)
                    | (~Q(status='available') & Q(assigned_email__isnull=False))
                ),
                name='ottkey_assigned_email_matches_status',
            ),
        ]

    def __str__(self):
        return f'{self.product} key ({self.status})'
