from django.contrib import admin
from claims.models import Claim


@admin.register(Claim)
class ClaimAdmin(admin.ModelAdmin):
    list_display = ['claim_id', 'email', 'activation_code', 'payment_status', 'ott_status', 'platform', 'created_at']
    list_filter = ['payment_status', 'ott_status', 'purchase_type']
    search_fields = ['claim_id', 'email', 'phone', 'activation_code', 'payment_id', 'razorpay_order_id']
    readonly_fields = [
        'claim_id', 'payment_id', 'razorpay_order_id', 'paid_at',
        'ott_code', 'platform', 'ott_assigned_at', 'created_at', 'updated_at',
    ]
