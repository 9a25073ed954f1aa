import uuid

from django.db import models


class PaymentTransaction(models.Model):
    """
    A captured Razorpay payment, recorded whichever way we learned of it
    (checkout callback, webhook or reconciliation sync).
    """
    SOURCE_CHOICES = [
        ('checkout', 'Checkout callback'),
        ('webhook', 'Razorpay webhook'),
        ('sync', 'Reconciliation sync'),
        ('manual', 'Admin'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    razorpay_payment_id = models.CharField(max_length=100, unique=True)
    razorpay_order_id = models.CharField(max_length=100, blank=True, default='', db_index=True)
    claim = models.ForeignKey('claims.Claim', on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions')
    amount = models.PositiveIntegerField(help_text='Amount in paise')
    currency = models.CharField(max_length=5, default='INR')
    status = models.CharField(max_length=20, default='captured')
    email = models.EmailField(blank=True, default='')
    source = models.CharField(max_length=10, choices=SOURCE_CHOICES, default='checkout')
    gateway_response = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.razorpay_payment_id} - ₹{self.amount / 100:.2f} ({self.status})'
