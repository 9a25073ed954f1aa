"""
Claims Serializers
"""

import os

from django.conf import settings
from rest_framework import serializers

from claims.models import Claim

ALLOWED_BILL_EXTENSIONS = ['.pdf', '.jpg', '.jpeg', '.png']
MAX_BILL_SIZE = 5 * 1024 * 1024


class ClaimSubmitSerializer(serializers.ModelSerializer):
    terms_accepted = serializers.BooleanField(write_only=True)

    class Meta:
        model = Claim
        fields = [
            'first_name', 'last_name', 'email', 'phone',
            'street_address', 'address_line2', 'city', 'state', 'postal_code', 'country',
            'purchase_type', 'purchase_date', 'invoice_number', 'seller_name',
            'activation_code', 'bill_file', 'terms_accepted',
        ]

    def validate_email(self, value):
        return value.strip().lower()

    def validate_activation_code(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Activation code is required.')
        return value

    def validate_bill_file(self, value):
        if value is None:
            return value
        ext = os.path.splitext(value.name)[1].lower()
        if ext not in ALLOWED_BILL_EXTENSIONS:
            raise serializers.ValidationError(f'Unsupported file type. Allowed: {", ".join(ALLOWED_BILL_EXTENSIONS)}')
        if value.size > MAX_BILL_SIZE:
            raise serializers.ValidationError('Bill file must be 5 MB or smaller.')
        return value

    def validate_terms_accepted(self, value):
        if not value:
            raise serializers.ValidationError('You must accept the terms and conditions.')
        return value

    def create(self, validated_data):
        validated_data.pop('terms_accepted', None)
        return Claim.objects.create(**validated_data)


class ActivationCodeSerializer(serializers.Serializer):
    activation_code = serializers.CharField(max_length=100)


class CustomerClaimSerializer(serializers.ModelSerializer):
    """What a customer sees on their dashboard. The OTT code is only exposed once delivered."""

    fee_rupees = serializers.SerializerMethodField()

    class Meta:
        model = Claim
        fields = [
            'claim_id', 'first_name', 'last_name', 'email', 'activation_code', 'purchase_type',
            'payment_status', 'ott_status', 'ott_code', 'platform', 'ott_assigned_at',
            'fee_rupees', 'created_at',
        ]
        read_only_fields = fields

    def get_fee_rupees(self, obj):
        return settings.CLAIM_FEE_PAISE / 100


class AdminClaimSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Claim
        fields = [
            'claim_id', 'full_name', 'first_name', 'last_name', 'email', 'phone',
            'street_address', 'address_line2', 'city', 'state', 'postal_code', 'country',
            'purchase_type', 'purchase_date', 'invoice_number', 'seller_name', 'bill_file',
            'activation_code', 'payment_status', 'payment_id', 'razorpay_order_id', 'paid_at',
            'ott_status', 'ott_code', 'platform', 'ott_assigned_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields
