"""Tests for the retention sweeper."""

import logging
import threading
from datetime import timedelta

import pytest
from django.utils import timezone

from vault.apps.files.cancellation import CancellationToken
from vault.apps.files.exceptions import OperationCancelledError
from vault.apps.files.logic import retention_operations
from vault.apps.files.logic.retention_operations import (
    RetentionPolicy,
    RetentionSweeper,
    SweepCategory,
    SweepReport,
    run_sweep_cycle,
    select_expired,
)
from vault.apps.files.models import FileRecord, FileStatus

_POLICY = RetentionPolicy(
    interval=timedelta(minutes=10),
    pending_expiry=timedelta(minutes=30),
    failed_expiry=timedelta(days=1),
    deleted_expiry=timedelta(days=30),
)


def _set_times(file_record, **timestamps):
    """Backdate timestamps without triggering auto_now."""
    FileRecord.all_objects.filter(id=file_record.id).update(**timestamps)


@pytest.fixture
def now():
    """Fixed reference time for a sweep."""
    return timezone.now()


@pytest.fixture
def expired_records(stored_file, now):
    """One expired record per sweep category.

    Returns:
        Dict of records by sweep category.
    """
    pending = stored_file(status=FileStatus.PENDING)
    _set_times(pending, created_at=now - timedelta(hours=1))

    failed = stored_file(status=FileStatus.FAILED)
    _set_times(failed, updated_at=now - timedelta(days=2))

    deleted = stored_file(is_deleted=True)
    _set_times(deleted, updated_at=now - timedelta(days=31))

    return {
        SweepCategory.STALE_PENDING: pending,
        SweepCategory.STALE_FAILED: failed,
        SweepCategory.EXPIRED_DELETED: deleted,
    }


def test_pending_cutoff_is_inclusive(make_file_record, now):
    """Test a record exactly at the cutoff is selected."""
    at_cutoff = make_file_record(status=FileStatus.PENDING)
    _set_times(at_cutoff, created_at=now - timedelta(minutes=30))
    just_inside = make_file_record(status=FileStatus.PENDING)
    _set_times(
        just_inside,
        created_at=now - timedelta(minutes=30) + timedelta(seconds=1),
    )

    selected = select_expired(SweepCategory.STALE_PENDING, _POLICY, now)

    assert list(selected) == [at_cutoff]


def test_failed_uses_updated_at(make_file_record, now):
    """Test failed records expire by their last update."""
    old_but_touched = make_file_record(status=FileStatus.FAILED)
    _set_times(
        old_but_touched,
        created_at=now - timedelta(days=5),
        updated_at=now - timedelta(hours=1),
    )
    stale = make_file_record(status=FileStatus.FAILED)
    _set_times(stale, updated_at=now - timedelta(days=1))

    selected = select_expired(SweepCategory.STALE_FAILED, _POLICY, now)

    assert list(selected) == [stale]


def test_deleted_ignores_live_records(make_file_record, now):
    """Test only soft-deleted records are purged from the trash."""
    live = make_file_record()
    _set_times(live, updated_at=now - timedelta(days=90))
    trashed = make_file_record(is_deleted=True)
    _set_times(trashed, updated_at=now - timedelta(days=30))

    selected = select_expired(SweepCategory.EXPIRED_DELETED, _POLICY, now)

    assert list(selected) == [trashed]


def test_uploaded_records_are_kept(stored_file, now, mock_s3):
    """Test live uploaded files are never swept."""
    file_record = stored_file()
    _set_times(
        file_record,
        created_at=now - timedelta(days=365),
        updated_at=now - timedelta(days=365),
    )

    report = run_sweep_cycle(_POLICY, now=now)

    assert report.matched == 0
    assert FileRecord.objects.filter(id=file_record.id).exists()


def test_sweep_removes_each_category(expired_records, now, mock_s3):
    """Test every category removes its rows and objects."""
    report = run_sweep_cycle(_POLICY, now=now)

    assert report.removed == 3
    assert report.failed == 0
    for category, file_record in expired_records.items():
        assert report.categories[category].removed == 1
        assert not FileRecord.all_objects.filter(id=file_record.id).exists()
    assert mock_s3.list_objects_v2(Bucket='files')['KeyCount'] == 0


def test_sweep_pending_without_object(make_file_record, now, mock_s3):
    """Test a pending record whose upload never happened is removed."""
    file_record = make_file_record(status=FileStatus.PENDING)
    _set_times(file_record, created_at=now - timedelta(hours=1))

    report = run_sweep_cycle(_POLICY, now=now)

    assert report.categories[SweepCategory.STALE_PENDING].removed == 1
    assert not FileRecord.all_objects.filter(id=file_record.id).exists()


def test_dry_run_changes_nothing(expired_records, now, mock_s3, caplog):
    """Test dry run only reports what it would remove."""
    policy = RetentionPolicy(dry_run=True)

    with caplog.at_level(logging.INFO, logger='vault'):
        report = run_sweep_cycle(policy, now=now)

    assert report.dry_run
    assert report.matched == 3
    assert report.removed == 0
    assert FileRecord.all_objects.count() == 3
    assert len(mock_s3.list_objects_v2(Bucket='files')['Contents']) == 3
    for category in SweepCategory:
        assert f'{category.value}: would remove' in caplog.text


def test_failing_record_does_not_stop_category(
    stored_file,
    failing_keys,
    now,
):
    """Test a storage failure keeps that row and sweeps the rest."""
    broken = stored_file(status=FileStatus.PENDING)
    healthy = stored_file(status=FileStatus.PENDING)
    for file_record in (broken, healthy):
        _set_times(file_record, created_at=now - timedelta(hours=1))
    failing_keys.add(broken.object_key)

    report = run_sweep_cycle(_POLICY, now=now)

    category_report = report.categories[SweepCategory.STALE_PENDING]
    assert category_report.matched == 2
    assert category_report.removed == 1
    assert category_report.failed == 1
    assert FileRecord.all_objects.filter(id=broken.id).exists()
    assert not FileRecord.all_objects.filter(id=healthy.id).exists()


def test_failing_category_does_not_stop_cycle(
    expired_records,
    now,
    monkeypatch,
):
    """Test an aborted pass leaves the other passes running."""
    original_select = retention_operations.select_expired

    def flaky_select(category, policy, reference_time):
        if category is SweepCategory.STALE_FAILED:
            raise RuntimeError('query failed')
        return original_select(category, policy, reference_time)

    monkeypatch.setattr(retention_operations, 'select_expired', flaky_select)

    report = run_sweep_cycle(_POLICY, now=now)

    assert report.categories[SweepCategory.STALE_FAILED].aborted
    assert report.categories[SweepCategory.STALE_PENDING].removed == 1
    assert report.categories[SweepCategory.EXPIRED_DELETED].removed == 1
    failed = expired_records[SweepCategory.STALE_FAILED]
    assert FileRecord.all_objects.filter(id=failed.id).exists()


def test_cancelled_cycle(expired_records, now):
    """Test a cancelled token stops the cycle before any removal."""
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        run_sweep_cycle(_POLICY, now=now, cancel_token=token)

    assert FileRecord.all_objects.count() == 3


def test_policy_from_settings(settings):
    """Test policy reads the FILE_CLEANUP settings."""
    settings.FILE_CLEANUP_INTERVAL_MINUTES = 5
    settings.FILE_CLEANUP_PENDING_EXPIRY_MINUTES = 45
    settings.FILE_CLEANUP_FAILED_EXPIRY_DAYS = 2
    settings.FILE_CLEANUP_DELETED_EXPIRY_DAYS = 7
    settings.FILE_CLEANUP_DRY_RUN = True

    policy = RetentionPolicy.from_settings()

    assert policy == RetentionPolicy(
        interval=timedelta(minutes=5),
        pending_expiry=timedelta(minutes=45),
        failed_expiry=timedelta(days=2),
        deleted_expiry=timedelta(days=7),
        dry_run=True,
    )


def test_sweeper_survives_failing_cycle(monkeypatch):
    """Test the loop logs a failed cycle and runs the next one."""
    sweeper = RetentionSweeper(
        policy=RetentionPolicy(interval=timedelta(0)),
        manage_connections=False,
    )
    calls = []

    def fake_cycle(policy, cancel_token):
        calls.append(policy)
        if len(calls) == 1:
            raise RuntimeError('database unavailable')
        cancel_token.cancel()
        return SweepReport(dry_run=False)

    monkeypatch.setattr(retention_operations, 'run_sweep_cycle', fake_cycle)

    sweeper.run_forever()

    assert len(calls) == 2


def test_sweeper_thread_stops(monkeypatch):
    """Test stop ends the background thread while it waits."""
    cycle_ran = threading.Event()

    def fake_cycle(policy, cancel_token):
        cycle_ran.set()
        return SweepReport(dry_run=False)

    monkeypatch.setattr(retention_operations, 'run_sweep_cycle', fake_cycle)
    sweeper = RetentionSweeper(
        policy=RetentionPolicy(interval=timedelta(hours=1)),
        manage_connections=False,
    )

    thread = sweeper.start()
    assert cycle_ran.wait(timeout=5)
    sweeper.stop(timeout=5)

    assert not thread.is_alive()
    assert thread.daemon


def test_record_removed_by_another_actor(
    stored_file,
    storage,
    mock_s3,
    now,
    monkeypatch,
    caplog,
):
    """Test a record purged concurrently counts as removed."""
    file_record = stored_file(status=FileStatus.PENDING)
    _set_times(file_record, created_at=now - timedelta(hours=1))
    original_delete = storage.delete_object

    def concurrent_purge(bucket, object_key, cancel_token):
        # Another worker removes row and object after selection
        FileRecord.all_objects.filter(object_key=object_key).delete()
        mock_s3.delete_object(Bucket=bucket, Key=object_key)
        original_delete(bucket, object_key, cancel_token)

    monkeypatch.setattr(storage, 'delete_object', concurrent_purge)

    with caplog.at_level(logging.INFO, logger='vault'):
        report = run_sweep_cycle(_POLICY, now=now)

    category_report = report.categories[SweepCategory.STALE_PENDING]
    assert category_report.removed == 1
    assert category_report.failed == 0
    assert 'File record already removed' in caplog.text
