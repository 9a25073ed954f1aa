from rest_framework import serializers


class ClaimReferenceSerializer(serializers.Serializer):
    claim_id = serializers.CharField(max_length=20)


class VerifyPaymentSerializer(serializers.Serializer):
    claim_id = serializers.CharField(max_length=20)
    razorpay_order_id = serializers.CharField(max_length=100)
    razorpay_payment_id = serializers.CharField(max_length=100)
    razorpay_signature = serializers.CharField(max_length=256)
