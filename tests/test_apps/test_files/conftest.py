"""Shared fixtures for files app tests."""

import uuid

import boto3
import pytest
from django.core.files.storage import storages
from moto import mock_aws

from vault.apps.files.cancellation import NEVER_CANCELLED
from vault.apps.files.exceptions import StorageError
from vault.apps.files.models import FileRecord, FileStatus

_BUCKET = 'files'


@pytest.fixture
def mock_s3():
    """Mock S3 service with the files bucket.

    Yields:
        boto3 S3 client with the files bucket created.
    """
    with mock_aws():
        client = boto3.client('s3', region_name='us-east-1')
        client.create_bucket(Bucket=_BUCKET)
        yield client


@pytest.fixture
def storage():
    """Default FileStorage instance used by the business logic.

    Returns:
        FileStorage configured by the project-wide test settings.
    """
    return storages['default']


@pytest.fixture
def make_file_record(db):
    """Factory for file records.

    Returns:
        Callable creating a FileRecord; keyword arguments override
        the defaults.
    """
    def factory(**fields):
        file_id = fields.pop('id', uuid.uuid4())
        defaults = {
            'id': file_id,
            'file_name': 'test.txt',
            'content_type': 'text/plain',
            'safe_content_type': 'text/plain',
            'friendly_content_type': 'Text File',
            'size': 17,
            'bucket': _BUCKET,
            'object_key': f'20260101/{file_id}_test.txt',
            'status': FileStatus.UPLOADED,
        }
        defaults.update(fields)
        return FileRecord.objects.create(**defaults)

    return factory


@pytest.fixture
def stored_file(mock_s3, make_file_record):
    """Factory for file records with an object in the mock bucket.

    Returns:
        Callable creating a FileRecord and uploading its object.
    """
    def factory(**fields):
        file_record = make_file_record(**fields)
        mock_s3.put_object(
            Bucket=file_record.bucket,
            Key=file_record.object_key,
            Body=b'test file content',
            ContentType='text/plain',
        )
        return file_record

    return factory


@pytest.fixture
def deleted_keys(storage, monkeypatch):
    """Record every object key the storage is asked to delete.

    Returns:
        List filled with object keys in call order.
    """
    keys = []
    original_delete = storage.delete_object

    def spy(bucket, object_key, cancel_token=NEVER_CANCELLED):
        keys.append(object_key)
        original_delete(bucket, object_key, cancel_token)

    monkeypatch.setattr(storage, 'delete_object', spy)
    return keys


@pytest.fixture
def failing_keys(storage, monkeypatch):
    """Make deletes of selected object keys fail with StorageError.

    Returns:
        Set to fill with object keys whose deletion should fail.
    """
    keys = set()
    original_delete = storage.delete_object

    def flaky_delete(bucket, object_key, cancel_token=NEVER_CANCELLED):
        if object_key in keys:
            raise StorageError(bucket, object_key, 'Access Denied')
        original_delete(bucket, object_key, cancel_token)

    monkeypatch.setattr(storage, 'delete_object', flaky_delete)
    return keys
