"""Tests for run_file_cleanup management command."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from vault.apps.files.logic.file_operations import soft_delete_file
from vault.apps.files.models import FileRecord, FileStatus


@pytest.mark.django_db
class TestRunFileCleanupCommand:
    """Tests for run_file_cleanup management command."""

    def test_once_purges_old_trash(self, stored_file, mock_s3):
        """Test a single cycle purges files trashed over 30 days ago."""
        file_record = stored_file()
        soft_delete_file(file_record.id)

        # Last touched 31 days ago
        FileRecord.all_objects.filter(id=file_record.id).update(
            updated_at=timezone.now() - timedelta(days=31),
        )

        out = StringIO()
        call_command('run_file_cleanup', '--once', stdout=out)

        assert not FileRecord.all_objects.filter(id=file_record.id).exists()
        assert 'Deleted purge: 1 matched, 1 removed, 0 failed' in out.getvalue()
        assert 'Purged 1 files, 0 failed' in out.getvalue()

    def test_once_preserves_recent_trash(self, stored_file, mock_s3):
        """Test files trashed less than 30 days ago are kept."""
        file_record = stored_file()
        soft_delete_file(file_record.id)

        FileRecord.all_objects.filter(id=file_record.id).update(
            updated_at=timezone.now() - timedelta(days=29),
        )

        out = StringIO()
        call_command('run_file_cleanup', '--once', stdout=out)

        assert FileRecord.all_objects.filter(id=file_record.id).exists()
        assert 'Purged 0 files, 0 failed' in out.getvalue()

    def test_once_dry_run(self, stored_file, mock_s3):
        """Test dry run reports stale records without removing them."""
        file_record = stored_file(status=FileStatus.PENDING)
        FileRecord.all_objects.filter(id=file_record.id).update(
            created_at=timezone.now() - timedelta(hours=2),
        )

        out = StringIO()
        call_command('run_file_cleanup', '--once', '--dry-run', stdout=out)

        assert FileRecord.all_objects.filter(id=file_record.id).exists()
        assert mock_s3.head_object(Bucket='files', Key=file_record.object_key)
        assert 'Pending cleanup: 1 matched, 0 removed' in out.getvalue()
        assert 'Would purge 1 files' in out.getvalue()

    def test_dry_run_setting(self, settings, stored_file, mock_s3):
        """Test FILE_CLEANUP_DRY_RUN turns on dry run without the flag."""
        settings.FILE_CLEANUP_DRY_RUN = True
        file_record = stored_file(status=FileStatus.FAILED)
        FileRecord.all_objects.filter(id=file_record.id).update(
            updated_at=timezone.now() - timedelta(days=2),
        )

        out = StringIO()
        call_command('run_file_cleanup', '--once', stdout=out)

        assert FileRecord.all_objects.filter(id=file_record.id).exists()
        assert 'Would purge 1 files' in out.getvalue()
