from import_export import fields, resources

from claims.models import Claim


class ClaimResource(resources.ModelResource):
    claim_id = fields.Field(attribute='claim_id', column_name='Claim ID')
    full_name = fields.Field(attribute='full_name', column_name='Name', readonly=True)

    class Meta:
        model = Claim
        fields = [
            'claim_id', 'full_name', 'email', 'phone', 'city', 'state', 'purchase_type',
            'purchase_date', 'invoice_number', 'seller_name', 'activation_code',
            'payment_status', 'payment_id', 'paid_at', 'ott_status', 'platform',
            'ott_code', 'ott_assigned_at', 'created_at',
        ]
        export_order = fields
