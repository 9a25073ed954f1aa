from django.contrib import admin
from payments.models import PaymentTransaction


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ['razorpay_payment_id', 'razorpay_order_id', 'claim', 'amount', 'status', 'source', 'created_at']
    list_filter = ['status', 'source']
    search_fields = ['razorpay_payment_id', 'razorpay_order_id', 'email', 'claim__claim_id']
    readonly_fields = ['id', 'gateway_response', 'created_at', 'updated_at']
