"""
Automation API Views - sweep trigger (cron + admin), reprocess, cancel, settings
"""

import logging

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from automation.models import AutomationSettings
from automation.scheduler import reprocess_claim, request_cancel, run_scheduled_sweep
from automation.serializers import AutomationSettingsSerializer, ReprocessSerializer
from dashboard.permissions import IsStaffAdmin, IsStaffOrCronSecret

logger = logging.getLogger(__name__)


def _truthy(value):
    return str(value).lower() in ('1', 'true', 'yes')


@api_view(['GET', 'POST'])
@permission_classes([IsStaffOrCronSecret])
def trigger_sweep(request):
    """
    Run a sweep now if one is due. External cron calls this with X-Cron-Secret;
    staff may pass force=true to skip the enabled/due checks.
    """
    force = _truthy(request.query_params.get('force', '')) or _truthy(request.data.get('force', ''))
    if force and not (request.user and request.user.is_authenticated and request.user.is_staff):
        force = False

    result = run_scheduled_sweep(force=force)
    code = status.HTTP_200_OK if result['success'] else status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response(result, status=code)


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
def reprocess(request):
    serializer = ReprocessSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    claim_id = serializer.validated_data['claim_id']

    logger.info(f'Reprocess requested for {claim_id} by {request.user}')
    result = reprocess_claim(claim_id)
    if result.get('outcome') == 'not_found':
        return Response({'error': result['message']}, status=status.HTTP_404_NOT_FOUND)
    return Response(result)


@api_view(['POST'])
@permission_classes([IsStaffAdmin])
def cancel_sweep(request):
    if request_cancel():
        return Response({'success': True, 'message': 'Cancellation requested'})
    return Response({'success': False, 'message': 'No sweep is running'}, status=status.HTTP_409_CONFLICT)


@api_view(['GET', 'POST'])
@permission_classes([IsStaffAdmin])
def automation_settings(request):
    config = AutomationSettings.get_config()
    if request.method == 'GET':
        return Response(AutomationSettingsSerializer(config).data)

    was_enabled = config.is_enabled
    previous_interval = config.interval_minutes
    serializer = AutomationSettingsSerializer(config, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    config = serializer.save()

    # Schedule the first run on enable; re-anchor when the interval changes
    if config.is_enabled and (not was_enabled or config.interval_minutes != previous_interval or not config.next_run):
        config.next_run = config.compute_next_run(timezone.now())
        config.save(update_fields=['next_run', 'updated_at'])

    logger.info(
        f'Automation settings updated by {request.user}: enabled={config.is_enabled} '
        f'interval={config.interval_minutes}m'
    )
    return Response(AutomationSettingsSerializer(config).data)
