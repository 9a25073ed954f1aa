from django.db import models


class NotificationLog(models.Model):
    CHANNEL_CHOICES = [
        ('email', 'Email'),
        ('whatsapp', 'WhatsApp'),
    ]

    recipient = models.CharField(max_length=255, db_index=True)
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES, default='email')
    template = models.CharField(max_length=50)
    subject = models.CharField(max_length=255, blank=True, default='')
    claim_id = models.CharField(max_length=20, blank=True, default='', db_index=True)
    success = models.BooleanField(default=False)
    error = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        status = 'sent' if self.success else 'failed'
        return f'{self.template} to {self.recipient} via {self.channel} ({status})'
