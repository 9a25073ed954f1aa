import logging
from datetime import timedelta

from django.contrib.auth import authenticate
from django.db import transaction
from django.db.models import Count, Exists, OuterRef, Q
from django.db.models.functions import TruncDate
from django.http import HttpResponse
from django.utils import timezone

from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from accounts.authentication import generate_admin_token
from accounts.models import AuditLog
from accounts.views import get_client_ip
from automation.exceptions import FulfillmentError, ManualAssignmentError
from automation.models import AutomationSettings
from automation.orchestrator import FulfillmentOrchestrator
from claims.models import Claim
from claims.resources import ClaimResource
from claims.serializers import AdminClaimSerializer
from inventory.importers import ImportValidationError, import_ott_keys, import_sales_records
from inventory.models import OTTKey, SalesRecord, normalize_activation_code
from inventory.resources import OTTKeyResource, SalesRecordResource
from notifications.services import Notifier
from payments.models import PaymentTransaction
from payments.services import sync_pending_payments

from dashboard.filters import ClaimFilter, OTTKeyFilter, PaymentTransactionFilter, SalesRecordFilter
from dashboard.permissions import IsStaffAdmin
from dashboard.serializers import (
    AdminLoginSerializer, AdminUserSerializer, AssignKeySerializer, AuditLogSerializer,
    DeleteCollectionSerializer, ExportSerializer, OTTKeySerializer, PaymentTransactionSerializer,
    SalesRecordSerializer, SendEmailSerializer, UploadSerializer,
)

logger = logging.getLogger(__name__)

PER_PAGE = 25

EXPORTS = {
    'claims': (ClaimResource, Claim.objects.order_by('-created_at')),
    'sales': (SalesRecordResource, SalesRecord.objects.order_by('-created_at')),
    'keys': (OTTKeyResource, OTTKey.objects.order_by('-created_at')),
}

CONTENT_TYPES = {
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'csv': 'text/csv',
}


def _audit(request, action, model_name='', object_id='', changes=None):
    AuditLog.objects.create(
        staff=request.user, action=action, model_name=model_name,
        object_id=str(object_id), changes=changes or {}, ip_address=get_client_ip(request) or None,
    )


def _paginate(request, qs, serializer_class):
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except ValueError:
        page = 1
    total = qs.count()
    items = qs[(page - 1) * PER_PAGE:page * PER_PAGE]
    return {
        'results': serializer_class(items, many=True).data,
        'count': total,
        'next': f'?page={page + 1}' if page * PER_PAGE < total else None,
        'previous': f'?page={page - 1}' if page > 1 else None,
    }


# ==================== AUTH ====================

@api_view(['POST'])
@permission_classes([AllowAny])
def admin_login(request):
    ser = AdminLoginSerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    user = authenticate(request, username=ser.validated_data['username'], password=ser.validated_data['password'])
    if not user:
        logger.warning(f'Failed admin login for {ser.validated_data["username"]}')
        return Response({'error': 'Invalid credentials'}, status=status.HTTP_401_UNAUTHORIZED)

    if not (user.is_staff or user.is_superuser):
        return Response({'error': 'Not authorized for admin access'}, status=status.HTTP_403_FORBIDDEN)

    user.last_login = timezone.now()
    user.save(update_fields=['last_login'])
    return Response({
        'access_token': generate_admin_token(user),
        'user': AdminUserSerializer(user).data,
    })


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def admin_me(request):
    return Response(AdminUserSerializer(request.user).data)


# ==================== DASHBOARD ====================

@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def dashboard_stats(request):
    today = timezone.localdate()
    chart_start = today - timedelta(days=29)

    claims_by_payment = dict(Claim.objects.order_by().values_list('payment_status').annotate(n=Count('pk')))
    claims_by_ott = dict(Claim.objects.order_by().values_list('ott_status').annotate(n=Count('pk')))
    keys_by_status = dict(OTTKey.objects.order_by().values_list('status').annotate(n=Count('pk')))
    sales_by_status = dict(SalesRecord.objects.order_by().values_list('status').annotate(n=Count('pk')))

    keys_by_platform = list(
        OTTKey.objects.filter(status=OTTKey.AVAILABLE)
        .values('product')
        .annotate(available=Count('pk'))
        .order_by('product')
    )

    daily_claims = dict(
        Claim.objects.filter(created_at__date__gte=chart_start)
        .annotate(day=TruncDate('created_at'))
        .values('day')
        .annotate(cnt=Count('pk'))
        .values_list('day', 'cnt')
    )
    daily_delivered = dict(
        Claim.objects.filter(ott_assigned_at__date__gte=chart_start)
        .annotate(day=TruncDate('ott_assigned_at'))
        .values('day')
        .annotate(cnt=Count('pk'))
        .values_list('day', 'cnt')
    )
    claims_chart = []
    for i in range(30):
        d = chart_start + timedelta(days=i)
        claims_chart.append({
            'date': d.strftime('%b %d'),
            'claims': daily_claims.get(d, 0),
            'delivered': daily_delivered.get(d, 0),
        })

    config = AutomationSettings.get_config()
    return Response({
        'total_claims': sum(claims_by_payment.values()),
        'claims_today': Claim.objects.filter(created_at__date=today).count(),
        'claims_by_payment_status': claims_by_payment,
        'claims_by_ott_status': claims_by_ott,
        'keys_by_status': keys_by_status,
        'keys_available_by_platform': keys_by_platform,
        'sales_by_status': sales_by_status,
        'claims_chart': claims_chart,
        'automation': {
            'is_enabled': config.is_enabled,
            'is_running': config.is_running,
            'interval_minutes': config.interval_minutes,
            'last_run': config.last_run.isoformat() if config.last_run else None,
            'next_run': config.next_run.isoformat() if config.next_run else None,
            'total_runs': config.total_runs,
            'last_error': config.last_error,
        },
    })


# ==================== CLAIMS ====================

@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def claim_list(request):
    qs = ClaimFilter(request.query_params, queryset=Claim.objects.order_by('-created_at')).qs
    return Response(_paginate(request, qs, AdminClaimSerializer))


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def claim_detail(request, claim_id):
    claim = Claim.objects.filter(claim_id=claim_id).first()
    if not claim:
        return Response({'error': 'Claim not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(AdminClaimSerializer(claim).data)


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
def assign_key(request, claim_id):
    ser = AssignKeySerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    claim = Claim.objects.filter(claim_id=claim_id).first()
    if not claim:
        return Response({'error': 'Claim not found'}, status=status.HTTP_404_NOT_FOUND)

    try:
        outcome = FulfillmentOrchestrator().manual_assign(claim, ser.validated_data['key_id'])
    except ManualAssignmentError as e:
        return Response({'error': str(e)}, status=e.status_code)
    except FulfillmentError as e:
        logger.error(f'Manual assignment for {claim_id} failed: {e}')
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    _audit(request, 'assign_key', 'Claim', claim_id, {'key_id': str(ser.validated_data['key_id'])})
    claim.refresh_from_db()
    return Response({**outcome, 'claim': AdminClaimSerializer(claim).data})


# ==================== INVENTORY ====================

@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def key_list(request):
    qs = OTTKeyFilter(request.query_params, queryset=OTTKey.objects.order_by('-created_at')).qs
    return Response(_paginate(request, qs, OTTKeySerializer))


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def sales_list(request):
    qs = SalesRecordFilter(request.query_params, queryset=SalesRecord.objects.order_by('-created_at')).qs
    return Response(_paginate(request, qs, SalesRecordSerializer))


def _upload(request, importer, label):
    ser = UploadSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    upload = ser.validated_data['file']
    mode = ser.validated_data['mode']

    try:
        result = importer(upload, mode=mode)
    except ImportValidationError as e:
        logger.warning(f'{label} upload "{upload.name}" rejected: {e}')
        return Response({'success': False, 'error': str(e), 'details': e.details}, status=status.HTTP_400_BAD_REQUEST)

    _audit(request, f'upload_{label}', label, '', {'file': upload.name, **result})
    logger.info(f'{label} upload "{upload.name}" by {request.user}: {result["count"]} row(s), mode={mode}')
    return Response(result, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
@parser_classes([MultiPartParser, FormParser])
def upload_sales(request):
    return _upload(request, import_sales_records, 'sales')


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
@parser_classes([MultiPartParser, FormParser])
def upload_keys(request):
    return _upload(request, import_ott_keys, 'keys')


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def export_data(request):
    ser = ExportSerializer(data=request.query_params)
    ser.is_valid(raise_exception=True)
    target = ser.validated_data['type']
    file_format = ser.validated_data['file_format']

    resource_class, queryset = EXPORTS[target]
    dataset = resource_class().export(queryset.all())
    content = dataset.export(file_format)

    filename = f'{target}_{timezone.localtime():%Y%m%d_%H%M%S}.{file_format}'
    response = HttpResponse(content, content_type=CONTENT_TYPES[file_format])
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    logger.info(f'Export {target} ({file_format}) by {request.user}: {len(dataset)} row(s)')
    return response


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
def delete_collection(request):
    """Wipe one collection. Requires the confirmation phrase, e.g. "DELETE KEYS"."""
    ser = DeleteCollectionSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    target = ser.validated_data['type']

    model = {'claims': Claim, 'sales': SalesRecord, 'keys': OTTKey}[target]
    with transaction.atomic():
        deleted, _ = model.objects.all().delete()

    _audit(request, f'delete_{target}', model.__name__, '', {'deleted': deleted})
    logger.warning(f'{request.user} deleted all {target}: {deleted} row(s)')
    return Response({'success': True, 'type': target, 'deleted': deleted})


# ==================== NOTIFICATIONS / PAYMENTS ====================

@api_view(['POST'])
@permission_classes([IsStaffAdmin])
def send_email(request):
    ser = SendEmailSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data

    claim = None
    if data.get('claim_id'):
        claim = Claim.objects.filter(claim_id=data['claim_id']).first()
        if not claim:
            return Response({'error': 'Claim not found'}, status=status.HTTP_404_NOT_FOUND)

    result = Notifier().send(data['to'], 'custom', {'subject': data['subject'], 'message': data['message']}, claim=claim)
    _audit(request, 'send_email', 'Claim' if claim else '', data.get('claim_id', ''), {'to': data['to']})
    if not result['success']:
        return Response({'success': False, 'error': 'Email could not be sent'}, status=status.HTTP_502_BAD_GATEWAY)
    return Response({'success': True, 'message': f'Email sent to {data["to"]}'})


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
def sync_payments(request):
    result = sync_pending_payments()
    _audit(request, 'sync_payments', changes={'checked': result['checked'], 'fixed': result['fixed']})
    code = status.HTTP_200_OK if result['success'] else status.HTTP_503_SERVICE_UNAVAILABLE
    return Response(result, status=code)


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def payment_transactions(request):
    qs = PaymentTransactionFilter(
        request.query_params,
        queryset=PaymentTransaction.objects.select_related('claim').order_by('-created_at'),
    ).qs
    return Response(_paginate(request, qs, PaymentTransactionSerializer))


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def reconciliation(request):
    """
    Cross-check the claims, payment and inventory ledgers.

    Lists captured payments with no paid claim, paid claims with no recorded
    payment, paid claims still waiting for a code, and sales records or keys
    held for a customer without a delivered claim to show for it.
    """
    delivered = Claim.objects.filter(ott_status=Claim.OTT_DELIVERED)

    orphan_payments = (
        PaymentTransaction.objects.select_related('claim')
        .filter(Q(claim__isnull=True) | ~Q(claim__payment_status=Claim.PAYMENT_PAID))
        .order_by('-created_at')
    )
    paid_without_payment = Claim.objects.filter(
        payment_status=Claim.PAYMENT_PAID, transactions__isnull=True,
    ).order_by('-created_at')
    paid_undelivered = Claim.objects.filter(
        payment_status=Claim.PAYMENT_PAID,
    ).exclude(ott_status=Claim.OTT_DELIVERED).order_by('paid_at')

    delivered_codes = {
        (normalize_activation_code(code), email.lower())
        for code, email in delivered.values_list('activation_code', 'email')
    }
    orphan_sales = [
        record for record in SalesRecord.objects.filter(status=SalesRecord.CLAIMED).order_by('claimed_date')
        if (normalize_activation_code(record.activation_code), (record.claimed_by or '').lower()) not in delivered_codes
    ]
    orphan_keys = (
        OTTKey.objects.exclude(status=OTTKey.AVAILABLE)
        .annotate(has_claim=Exists(delivered.filter(ott_code=OuterRef('activation_code'))))
        .filter(has_claim=False)
        .order_by('assigned_date')
    )

    report = {
        'payments_without_paid_claim': PaymentTransactionSerializer(orphan_payments, many=True).data,
        'paid_claims_without_payment': AdminClaimSerializer(paid_without_payment, many=True).data,
        'paid_claims_not_delivered': AdminClaimSerializer(paid_undelivered, many=True).data,
        'claimed_sales_without_delivery': SalesRecordSerializer(orphan_sales, many=True).data,
        'assigned_keys_without_claim': OTTKeySerializer(orphan_keys, many=True).data,
    }
    report['stats'] = {
        'total_payments': PaymentTransaction.objects.count(),
        'total_paid_claims': Claim.objects.filter(payment_status=Claim.PAYMENT_PAID).count(),
        **{name: len(rows) for name, rows in report.items()},
    }
    logger.info(f'Reconciliation by {request.user}: {report["stats"]}')
    return Response(report)


@api_view(['GET'])
@permission_classes([IsStaffAdmin])
def audit_logs(request):
    qs = AuditLog.objects.select_related('staff').order_by('-created_at')
    action = request.query_params.get('action', '')
    if action:
        qs = qs.filter(action=action)
    return Response(_paginate(request, qs, AuditLogSerializer))
