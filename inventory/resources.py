from import_export import fields, resources

from inventory.models import OTTKey, SalesRecord


class SalesRecordResource(resources.ModelResource):
    activation_code = fields.Field(attribute='activation_code', column_name='Activation Code/ Serial No / IMEI Number')
    product = fields.Field(attribute='product', column_name='Product')
    product_sub_category = fields.Field(attribute='product_sub_category', column_name='Product Sub Category')

    class Meta:
        model = SalesRecord
        import_id_fields = ['activation_code']
        fields = [
            'id', 'product_sub_category', 'product', 'activation_code', 'sale_date', 'customer_email',
            'status', 'claimed_by', 'claimed_date', 'created_at',
        ]
        export_order = fields
        skip_unchanged = True


class OTTKeyResource(resources.ModelResource):
    activation_code = fields.Field(attribute='activation_code', column_name='Activation Code')
    product = fields.Field(attribute='product', column_name='Product')
    product_sub_category = fields.Field(attribute='product_sub_category', column_name='Product Sub Category')

    class Meta:
        model = OTTKey
        import_id_fields = ['activation_code']
        fields = [
            'id', 'product_sub_category', 'product', 'activation_code', 'status',
            'assigned_email', 'assigned_date', 'created_at',
        ]
        export_order = fields
        skip_unchanged = True
