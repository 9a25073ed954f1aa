from django.contrib import admin
from import_export.admin import ImportExportModelAdmin

from inventory.models import OTTKey, SalesRecord
from inventory.resources import OTTKeyResource, SalesRecordResource


@admin.register(SalesRecord)
class SalesRecordAdmin(ImportExportModelAdmin):
    resource_classes = [SalesRecordResource]
    list_display = ['activation_code', 'product', 'product_sub_category', 'status', 'claimed_by', 'claimed_date', 'created_at']
    list_filter = ['status', 'product']
    search_fields = ['activation_code', 'normalized_code', 'claimed_by', 'customer_email']
    readonly_fields = ['id', 'normalized_code', 'claimed_by', 'claimed_date', 'created_at', 'updated_at']


@admin.register(OTTKey)
class OTTKeyAdmin(ImportExportModelAdmin):
    resource_classes = [OTTKeyResource]
    list_display = ['product', 'product_sub_category', 'status', 'assigned_email', 'assigned_date', 'created_at']
    list_filter = ['status', 'product']
    search_fields = ['activation_code', 'assigned_email']
    readonly_fields = ['id', 'assigned_email', 'assigned_date', 'created_at', 'updated_at']
