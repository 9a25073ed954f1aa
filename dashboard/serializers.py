from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.models import AuditLog
from inventory.importers import MODE_APPEND, MODE_REPLACE
from inventory.models import OTTKey, SalesRecord
from payments.models import PaymentTransaction

DELETE_TARGETS = ['claims', 'sales', 'keys']
EXPORT_TARGETS = ['claims', 'sales', 'keys']
EXPORT_FORMATS = ['xlsx', 'csv']


class AdminLoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)


class AdminUserSerializer(serializers.ModelSerializer):
    role = serializers.SerializerMethodField()

    class Meta:
        model = get_user_model()
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'role', 'last_login']

    def get_role(self, obj):
        return 'super_admin' if obj.is_superuser else 'staff'


class OTTKeySerializer(serializers.ModelSerializer):
    class Meta:
        model = OTTKey
        fields = [
            'id', 'activation_code', 'product', 'product_sub_category', 'status',
            'assigned_email', 'assigned_date', 'created_at',
        ]


class SalesRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = SalesRecord
        fields = [
            'id', 'activation_code', 'product', 'product_sub_category', 'sale_date',
            'customer_email', 'status', 'claimed_by', 'claimed_date', 'created_at',
        ]


class AssignKeySerializer(serializers.Serializer):
    key_id = serializers.UUIDField()


class UploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    mode = serializers.ChoiceField(choices=[MODE_REPLACE, MODE_APPEND], default=MODE_REPLACE)


class ExportSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=EXPORT_TARGETS)
    file_format = serializers.ChoiceField(choices=EXPORT_FORMATS, default='xlsx')


class DeleteCollectionSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=DELETE_TARGETS)
    confirm = serializers.CharField()

    def validate(self, attrs):
        expected = f'DELETE {attrs["type"].upper()}'
        if attrs['confirm'] != expected:
            raise serializers.ValidationError({'confirm': f'Type "{expected}" to confirm.'})
        return attrs


class SendEmailSerializer(serializers.Serializer):
    to = serializers.EmailField()
    subject = serializers.CharField(max_length=200)
    message = serializers.CharField()
    claim_id = serializers.CharField(max_length=20, required=False, allow_blank=True)


class AuditLogSerializer(serializers.ModelSerializer):
    staff = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = ['id', 'staff', 'action', 'model_name', 'object_id', 'changes', 'ip_address', 'created_at']

    def get_staff(self, obj):
        return obj.staff.get_username() if obj.staff else None


class PaymentTransactionSerializer(serializers.ModelSerializer):
    claim_id = serializers.SerializerMethodField()
    amount_rupees = serializers.SerializerMethodField()

    class Meta:
        model = PaymentTransaction
        fields = [
            'id', 'razorpay_payment_id', 'razorpay_order_id', 'claim_id', 'amount', 'amount_rupees',
            'currency', 'status', 'email', 'source', 'created_at',
        ]

    def get_claim_id(self, obj):
        return obj.claim.claim_id if obj.claim else None

    def get_amount_rupees(self, obj):
        return f'{obj.amount / 100:.2f}'
