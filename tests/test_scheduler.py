from datetime import timedelta
from unittest import mock

import pytest
from django.utils import timezone

from automation.models import AutomationSettings
from automation.orchestrator import FulfillmentOrchestrator
from automation.scheduler import (
    _acquire_run_lock, _release_run_lock, reprocess_claim, request_cancel, run_scheduled_sweep,
)
from claims.models import Claim


@pytest.fixture
def orchestrator(notifier):
    return FulfillmentOrchestrator(notifier=notifier)


@pytest.fixture
def enabled(db):
    config = AutomationSettings.get_config()
    config.is_enabled = True
    config.interval_minutes = 5
    config.save()
    return config


@pytest.mark.django_db
def test_singleton_always_uses_pk_1():
    AutomationSettings(interval_minutes=30).save()
    AutomationSettings(interval_minutes=60).save()
    assert AutomationSettings.objects.count() == 1
    assert AutomationSettings.get_config().interval_minutes == 60


@pytest.mark.django_db
def test_disabled_automation_skips(orchestrator):
    result = run_scheduled_sweep(orchestrator=orchestrator)
    assert result['skipped'] is True
    assert result['message'] == 'Automation is disabled'
    assert result['run_number'] == 0
    assert result['next_run'] is None
    assert AutomationSettings.get_config().total_runs == 0


@pytest.mark.django_db
def test_not_due_skips(enabled, orchestrator):
    enabled.next_run = timezone.now() + timedelta(minutes=3)
    enabled.save()

    result = run_scheduled_sweep(orchestrator=orchestrator)

    assert result['skipped'] is True
    assert result['run_number'] == 0
    assert result['next_run'] == enabled.next_run.isoformat()


@pytest.mark.django_db
def test_due_run_sweeps_and_records_stats(enabled, orchestrator, make_claim, make_sales_record, make_key):
    make_sales_record('SCHED-1')
    make_key()
    claim = make_claim(activation_code='SCHED-1')
    before = timezone.now()

    result = run_scheduled_sweep(orchestrator=orchestrator)

    assert result['success'] is True
    assert result['skipped'] is False
    assert result['run_number'] == 1
    assert result['results']['succeeded'] == 1
    claim.refresh_from_db()
    assert claim.ott_status == Claim.OTT_DELIVERED

    config = AutomationSettings.get_config()
    assert config.is_running is False
    assert config.total_runs == 1
    assert config.last_run >= before
    assert config.next_run == config.last_run + timedelta(minutes=5)
    assert config.last_run_result['succeeded'] == 1
    assert 'details' not in config.last_run_result


@pytest.mark.django_db
def test_rollback_failures_are_kept_in_run_result(enabled, orchestrator, make_claim):
    stuck = make_claim()
    make_claim()

    def outcome_for(claim):
        return {
            'claim_id': claim.claim_id, 'outcome': 'error', 'success': False, 'message': '',
            'rollback_failed': claim.pk == stuck.pk,
        }

    with mock.patch.object(orchestrator, 'process', side_effect=outcome_for):
        run_scheduled_sweep(orchestrator=orchestrator)

    assert AutomationSettings.get_config().last_run_result['rollback_failed'] == [stuck.claim_id]


@pytest.mark.django_db
def test_running_lock_blocks_second_sweep(enabled, orchestrator):
    AutomationSettings.objects.filter(pk=1).update(is_running=True, run_started_at=timezone.now(), total_runs=4)

    result = run_scheduled_sweep(orchestrator=orchestrator)

    assert result['skipped'] is True
    assert result['message'] == 'A sweep is already running'
    assert result['run_number'] == 4
    assert 'next_run' in result
    assert AutomationSettings.get_config().total_runs == 4


@pytest.mark.django_db
def test_late_release_does_not_free_lock_taken_over_from_stale_sweep(settings):
    settings.AUTOMATION_LOCK_STALE_MINUTES = 15
    first = _acquire_run_lock()
    AutomationSettings.objects.filter(pk=1).update(run_started_at=first - timedelta(minutes=20))
    second = _acquire_run_lock()
    assert second is not None

    # The stale sweep finishes after its lock was broken
    _release_run_lock(first, {'processed': 0})

    config = AutomationSettings.get_config()
    assert config.is_running is True
    assert config.run_started_at == second
    assert config.total_runs == 1
    assert config.last_run_result == {'processed': 0}
    assert _acquire_run_lock() is None

    _release_run_lock(second, {'processed': 2})
    config.refresh_from_db()
    assert config.is_running is False
    assert config.total_runs == 2
    assert _acquire_run_lock() is not None


@pytest.mark.django_db
def test_stale_lock_is_broken(enabled, orchestrator, settings):
    settings.AUTOMATION_LOCK_STALE_MINUTES = 15
    AutomationSettings.objects.filter(pk=1).update(
        is_running=True, run_started_at=timezone.now() - timedelta(minutes=20),
    )

    result = run_scheduled_sweep(orchestrator=orchestrator)

    assert result['skipped'] is False
    config = AutomationSettings.get_config()
    assert config.is_running is False
    assert config.total_runs == 1


@pytest.mark.django_db
def test_force_runs_even_when_disabled(orchestrator):
    result = run_scheduled_sweep(force=True, orchestrator=orchestrator)
    assert result['skipped'] is False
    assert AutomationSettings.get_config().total_runs == 1


@pytest.mark.django_db
def test_crashed_sweep_still_releases_lock(enabled, orchestrator):
    with mock.patch.object(orchestrator, 'sweep', side_effect=RuntimeError('store down')):
        result = run_scheduled_sweep(orchestrator=orchestrator)

    assert result['success'] is False
    config = AutomationSettings.get_config()
    assert config.is_running is False
    assert config.last_error == 'store down'
    assert config.last_error_at is not None
    assert config.total_runs == 1


@pytest.mark.django_db
def test_cancel_request_stops_sweep_between_claims(enabled, orchestrator, make_claim):
    make_claim()
    make_claim()

    def cancel_after_first(claim):
        request_cancel()
        return {'claim_id': claim.claim_id, 'outcome': 'skipped', 'success': False, 'message': ''}

    with mock.patch.object(orchestrator, 'process', side_effect=cancel_after_first):
        result = run_scheduled_sweep(orchestrator=orchestrator)

    assert result['results']['cancelled'] is True
    assert result['results']['processed'] == 1
    assert AutomationSettings.get_config().cancel_requested is False


@pytest.mark.django_db
def test_request_cancel_without_running_sweep():
    AutomationSettings.get_config()
    assert request_cancel() is False


@pytest.mark.django_db
def test_reprocess_resets_no_key_claim(orchestrator, make_claim, make_sales_record, make_key):
    make_sales_record('RE-1')
    claim = make_claim(activation_code='RE-1', ott_status=Claim.OTT_NO_KEY)
    make_key()

    outcome = reprocess_claim(claim.claim_id, orchestrator=orchestrator)

    assert outcome['outcome'] == 'delivered'


@pytest.mark.django_db
def test_reprocess_leaves_delivered_and_unpaid_claims_alone(orchestrator, make_claim):
    delivered = make_claim(ott_status=Claim.OTT_DELIVERED, ott_code='CODE-1')
    unpaid = make_claim(payment_status=Claim.PAYMENT_PENDING)

    assert reprocess_claim(delivered.claim_id, orchestrator=orchestrator)['outcome'] == 'skipped'
    result = reprocess_claim(unpaid.claim_id, orchestrator=orchestrator)
    assert result['success'] is False
    assert reprocess_claim('CLM-MISSING', orchestrator=orchestrator)['outcome'] == 'not_found'


@pytest.mark.django_db
def test_process_claim_task_runs_pipeline(make_claim, make_sales_record, make_key):
    from automation.tasks import task_process_claim

    make_sales_record('TASK-1')
    make_key()
    claim = make_claim(activation_code='TASK-1')

    outcome = task_process_claim.delay(claim.claim_id).get()

    assert outcome['outcome'] == 'delivered'
    assert task_process_claim.delay('CLM-NOPE').get()['success'] is False


@pytest.mark.django_db
def test_sweep_task_respects_disabled_switch():
    from automation.tasks import task_run_fulfillment_sweep

    assert task_run_fulfillment_sweep.delay().get()['skipped'] is True
