import django_filters
from django.db.models import Q

from claims.models import Claim
from inventory.models import OTTKey, SalesRecord
from payments.models import PaymentTransaction


class ClaimFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    payment_status = django_filters.CharFilter(field_name='payment_status')
    ott_status = django_filters.CharFilter(field_name='ott_status')
    platform = django_filters.CharFilter(field_name='platform', lookup_expr='iexact')
    created_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    created_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = Claim
        fields = ['payment_status', 'ott_status', 'platform', 'purchase_type']

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(claim_id__icontains=value) | Q(email__icontains=value) | Q(phone__icontains=value)
            | Q(first_name__icontains=value) | Q(last_name__icontains=value)
            | Q(activation_code__icontains=value)
        )


class OTTKeyFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    product = django_filters.CharFilter(field_name='product', lookup_expr='iexact')

    class Meta:
        model = OTTKey
        fields = ['status', 'product']

    def filter_search(self, queryset, name, value):
        return queryset.filter(Q(activation_code__icontains=value) | Q(assigned_email__icontains=value))


class SalesRecordFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    product = django_filters.CharFilter(field_name='product', lookup_expr='icontains')

    class Meta:
        model = SalesRecord
        fields = ['status', 'product']

    def filter_search(self, queryset, name, value):
        return queryset.filter(Q(activation_code__icontains=value) | Q(claimed_by__icontains=value))


class PaymentTransactionFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    created_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    created_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = PaymentTransaction
        fields = ['status', 'source']

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(razorpay_payment_id__icontains=value) | Q(razorpay_order_id__icontains=value)
            | Q(email__icontains=value) | Q(claim__claim_id__icontains=value)
        )
