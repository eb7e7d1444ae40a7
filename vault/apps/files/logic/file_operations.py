"""Business logic for file operations."""

import dataclasses
import logging
import uuid
from collections.abc import Iterable
from datetime import timedelta
from typing import TYPE_CHECKING, BinaryIO, Final, final

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.db import transaction

from vault.apps.files.cancellation import NEVER_CANCELLED, CancellationToken
from vault.apps.files.exceptions import (
    BulkDeleteNotForcedError,
    ObjectNotFoundError,
    StorageError,
    UploadConfirmationError,
)
from vault.apps.files.infrastructure.metadata import (
    build_object_key,
    get_friendly_content_type,
    get_safe_content_type,
    sanitize_file_name,
)
from vault.apps.files.models import FileRecord, FileStatus, Folder

if TYPE_CHECKING:
    from vault.apps.files.infrastructure.storage import FileStorage

logger = logging.getLogger(__name__)

_DEFAULT_PAGE_SIZE: Final = 20


@final
@dataclasses.dataclass(frozen=True)
class PresignedUpload:
    """Placeholder record plus the URL a client uploads to."""

    file_id: uuid.UUID
    upload_url: str
    object_key: str
    bucket: str


@final
@dataclasses.dataclass(frozen=True)
class BulkDeleteResult:
    """Outcome of a bulk hard delete."""

    deleted_ids: list[uuid.UUID]
    failed_ids: list[uuid.UUID]


def _get_storage() -> 'FileStorage':
    """Get the configured default storage backend.

    Returns:
        FileStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def _presigned_url_ttl() -> timedelta:
    return getattr(settings, 'FILES_PRESIGNED_URL_TTL', timedelta(minutes=15))


def _ensure_folder_exists(folder_id: uuid.UUID | None) -> None:
    if folder_id is not None and not Folder.objects.filter(id=folder_id).exists():
        raise Folder.DoesNotExist(f'Folder not found: {folder_id}')


def _get_file_size(file_obj: BinaryIO) -> int:
    """Get file size from file object.

    Args:
        file_obj: File-like object.

    Returns:
        File size in bytes.
    """
    if hasattr(file_obj, 'size'):
        return file_obj.size
    file_size = len(file_obj.read())
    file_obj.seek(0)
    return file_size


def upload_file(  # noqa: WPS211
    file_obj: BinaryIO,
    file_name: str,
    content_type: str,
    folder_id: uuid.UUID | None = None,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> FileRecord:
    """Upload file to storage and create database record.

    Transaction safety: Upload to storage first, then create DB record.
    If DB transaction fails, the uploaded object is deleted from storage
    (rollback).

    Args:
        file_obj: File-like object to upload.
        file_name: Original file name from the client.
        content_type: Content type reported by the client.
        folder_id: Optional owning folder; None stores at root level.
        cancel_token: Caller's cancellation token.

    Returns:
        Created FileRecord in ``Uploaded`` state.

    Raises:
        ValidationError: If the file is empty.
        Folder.DoesNotExist: If ``folder_id`` does not exist.
        StorageError: If the upload fails.
    """
    file_size = _get_file_size(file_obj)
    if file_size == 0:
        raise ValidationError('No file provided')

    _ensure_folder_exists(folder_id)

    storage = _get_storage()
    file_id = uuid.uuid4()
    sanitized_name = sanitize_file_name(file_name)
    object_key = build_object_key(file_id, sanitized_name)
    bucket = storage.bucket_name

    # Step 1: Upload to storage first
    storage.put_object(bucket, object_key, file_obj, content_type, cancel_token)

    # Step 2: Create database record (in transaction)
    try:
        with transaction.atomic():
            file_record = FileRecord.objects.create(
                id=file_id,
                file_name=sanitized_name,
                content_type=content_type,
                safe_content_type=get_safe_content_type(
                    content_type,
                    sanitized_name,
                ),
                friendly_content_type=get_friendly_content_type(
                    content_type,
                    sanitized_name,
                ),
                size=file_size,
                bucket=bucket,
                object_key=object_key,
                folder_id=folder_id,
                status=FileStatus.UPLOADED,
            )
    except Exception:
        # Rollback: Delete object from storage since DB transaction failed
        logger.exception(
            'Database transaction failed, rolling back storage upload: %s',
            object_key,
        )
        storage.rollback_upload(bucket, object_key)
        raise

    logger.info(
        'File record created in database: %s (ID: %s)',
        object_key,
        file_record.id,
    )
    return file_record


def list_files(page: int = 1, page_size: int = _DEFAULT_PAGE_SIZE) -> list[FileRecord]:
    """List files that are not in the trash, newest first.

    Args:
        page: 1-based page number.
        page_size: Records per page.

    Returns:
        FileRecords on the requested page.

    Raises:
        ValidationError: If page or page size is not positive.
    """
    if page < 1 or page_size < 1:
        raise ValidationError('Page and page size must be positive')
    offset = (page - 1) * page_size
    queryset = FileRecord.objects.select_related('folder').order_by('-created_at')
    return list(queryset[offset:offset + page_size])


def get_file(file_id: uuid.UUID) -> FileRecord:
    """Get a file record that is not in the trash.

    Raises:
        FileRecord.DoesNotExist: If file not found.
    """
    return FileRecord.objects.select_related('folder').get(id=file_id)


def get_download_url(
    file_id: uuid.UUID,
    ttl: timedelta | None = None,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> str:
    """Generate a presigned download URL for a file.

    Args:
        file_id: ID of the file.
        ttl: URL lifetime, defaults to ``FILES_PRESIGNED_URL_TTL``.
        cancel_token: Caller's cancellation token.

    Returns:
        URL on the public endpoint.

    Raises:
        FileRecord.DoesNotExist: If file not found.
    """
    file_record = FileRecord.objects.get(id=file_id)
    return _get_storage().presigned_get_url(
        file_record.bucket,
        file_record.object_key,
        ttl or _presigned_url_ttl(),
        cancel_token,
    )


def soft_delete_file(file_id: uuid.UUID) -> FileRecord:
    """Move file to trash (soft delete).

    The object stays in storage until the record is hard deleted or
    the retention sweeper purges it.

    Args:
        file_id: ID of file to soft delete.

    Returns:
        Updated FileRecord instance.

    Raises:
        FileRecord.DoesNotExist: If file not found.
    """
    file_record = FileRecord.objects.get(id=file_id)
    file_record.is_deleted = True
    file_record.save(update_fields=['is_deleted', 'updated_at'])

    logger.info('File moved to trash: %s (ID: %s)', file_record.object_key, file_id)
    return file_record


def restore_file(file_id: uuid.UUID) -> FileRecord:
    """Restore file from trash.

    Args:
        file_id: ID of file to restore.

    Returns:
        Updated FileRecord instance.

    Raises:
        FileRecord.DoesNotExist: If file not found or not in trash.
    """
    file_record = FileRecord.all_objects.get(id=file_id, is_deleted=True)
    file_record.is_deleted = False
    file_record.save(update_fields=['is_deleted', 'updated_at'])

    logger.info('File restored: %s (ID: %s)', file_record.object_key, file_id)
    return file_record


def purge_file_record(
    file_record: FileRecord,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> None:
    """Remove a record's object and then its row.

    A missing object counts as already removed. A row removed
    concurrently by another actor counts as success too.

    Args:
        file_record: Record to purge.
        cancel_token: Caller's cancellation token.

    Raises:
        StorageError: If the object could not be deleted; the row is
            kept so the purge can be retried.
    """
    try:
        _get_storage().delete_object(
            file_record.bucket,
            file_record.object_key,
            cancel_token,
        )
    except ObjectNotFoundError:
        logger.info(
            'Object already gone from storage: %s (ID: %s)',
            file_record.object_key,
            file_record.id,
        )

    cancel_token.raise_if_cancelled()
    deleted_count, _ = FileRecord.all_objects.filter(id=file_record.id).delete()
    if deleted_count:
        logger.info(
            'Deleted file %s (ID: %s)',
            file_record.file_name,
            file_record.id,
        )
    else:
        logger.info('File record already removed: %s', file_record.id)


def hard_delete_file(
    file_id: uuid.UUID,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> None:
    """Permanently delete a file from storage and database.

    Works for files in the trash as well.

    Args:
        file_id: ID of file to delete.
        cancel_token: Caller's cancellation token.

    Raises:
        FileRecord.DoesNotExist: If file not found.
        StorageError: If the object could not be deleted.
    """
    try:
        file_record = FileRecord.all_objects.get(id=file_id)
    except FileRecord.DoesNotExist:
        logger.exception('File not found: ID=%s', file_id)
        raise

    purge_file_record(file_record, cancel_token)


def hard_delete_files(
    file_ids: Iterable[uuid.UUID],
    force: bool,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> BulkDeleteResult:
    """Permanently delete several files.

    Nothing is touched unless ``force`` is set. A storage failure on
    one record is logged and does not stop the others; that record
    keeps its row for a later retry.

    Args:
        file_ids: IDs of files to delete.
        force: Explicit confirmation flag.
        cancel_token: Caller's cancellation token.

    Returns:
        BulkDeleteResult with deleted and failed IDs. Unknown IDs are
        in neither list.

    Raises:
        ValidationError: If no IDs were given.
        BulkDeleteNotForcedError: If ``force`` is false.
    """
    file_ids = list(file_ids)
    if not file_ids:
        raise ValidationError('No file IDs provided')
    if not force:
        raise BulkDeleteNotForcedError(
            'Force flag must be true to perform bulk hard delete',
        )

    file_records = list(FileRecord.all_objects.filter(id__in=file_ids))
    return _purge_each(file_records, cancel_token)


def delete_files_in_folder(
    folder_id: uuid.UUID,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> BulkDeleteResult:
    """Permanently delete every file directly inside a folder.

    Sub-folders are not touched.

    Args:
        folder_id: ID of the owning folder.
        cancel_token: Caller's cancellation token.

    Returns:
        BulkDeleteResult with deleted and failed IDs.
    """
    file_records = list(FileRecord.all_objects.filter(folder_id=folder_id))
    return _purge_each(file_records, cancel_token)


def _purge_each(
    file_records: list[FileRecord],
    cancel_token: CancellationToken,
) -> BulkDeleteResult:
    deleted_ids: list[uuid.UUID] = []
    failed_ids: list[uuid.UUID] = []
    for file_record in file_records:
        try:
            purge_file_record(file_record, cancel_token)
        except StorageError as error:
            logger.warning(
                'Failed to delete file %s (ID: %s): %s',
                file_record.object_key,
                file_record.id,
                error.reason,
            )
            failed_ids.append(file_record.id)
        else:
            deleted_ids.append(file_record.id)
    return BulkDeleteResult(deleted_ids=deleted_ids, failed_ids=failed_ids)


def create_presigned_upload(  # noqa: WPS211
    file_name: str,
    content_type: str = '',
    size: int | None = None,
    folder_id: uuid.UUID | None = None,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> PresignedUpload:
    """Create a pending file record and a presigned upload URL for it.

    The client uploads straight to the store and then calls
    ``confirm_upload``. Unconfirmed records are purged by the
    retention sweeper once they go stale.

    Args:
        file_name: Original file name.
        content_type: Content type the client intends to send.
        size: Expected size, refreshed on confirmation.
        folder_id: Optional owning folder.
        cancel_token: Caller's cancellation token.

    Returns:
        PresignedUpload with record ID and URL.

    Raises:
        ValidationError: If the file name is empty.
        Folder.DoesNotExist: If ``folder_id`` does not exist.
    """
    if not file_name or not file_name.strip():
        raise ValidationError('File name is required')

    _ensure_folder_exists(folder_id)

    storage = _get_storage()
    file_id = uuid.uuid4()
    sanitized_name = sanitize_file_name(file_name)
    object_key = build_object_key(file_id, sanitized_name)
    bucket = storage.bucket_name

    FileRecord.objects.create(
        id=file_id,
        file_name=sanitized_name,
        content_type=content_type,
        safe_content_type=get_safe_content_type(content_type, sanitized_name),
        friendly_content_type=get_friendly_content_type(
            content_type,
            sanitized_name,
        ),
        size=size or 0,
        bucket=bucket,
        object_key=object_key,
        folder_id=folder_id,
        status=FileStatus.PENDING,
    )
    logger.info('Pending file record created: %s (ID: %s)', object_key, file_id)

    upload_url = storage.presigned_put_url(
        bucket,
        object_key,
        _presigned_url_ttl(),
        cancel_token,
    )
    return PresignedUpload(
        file_id=file_id,
        upload_url=upload_url,
        object_key=object_key,
        bucket=bucket,
    )


def confirm_upload(
    file_id: uuid.UUID,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> FileRecord:
    """Confirm that a presigned upload reached the store.

    On success the record becomes ``Uploaded`` with size and content
    type taken from the store. Otherwise it becomes ``Failed``.

    Args:
        file_id: ID of the pending file record.
        cancel_token: Caller's cancellation token.

    Returns:
        Updated FileRecord instance.

    Raises:
        FileRecord.DoesNotExist: If file not found.
        UploadConfirmationError: If the object is not in the store.
    """
    file_record = FileRecord.objects.get(id=file_id)

    try:
        size, content_type = _get_storage().stat_object(
            file_record.bucket,
            file_record.object_key,
            cancel_token,
        )
    except StorageError as error:
        file_record.status = FileStatus.FAILED
        file_record.save(update_fields=['status', 'updated_at'])
        logger.warning(
            'Upload confirmation failed: %s (ID: %s): %s',
            file_record.object_key,
            file_id,
            error.reason,
        )
        raise UploadConfirmationError(file_id, file_record.object_key) from error

    file_record.size = size
    file_record.content_type = content_type or file_record.content_type
    file_record.safe_content_type = get_safe_content_type(
        file_record.content_type,
        file_record.file_name,
    )
    file_record.friendly_content_type = get_friendly_content_type(
        file_record.content_type,
        file_record.file_name,
    )
    file_record.status = FileStatus.UPLOADED
    file_record.save(update_fields=[
        'size',
        'content_type',
        'safe_content_type',
        'friendly_content_type',
        'status',
        'updated_at',
    ])

    logger.info('Upload confirmed: %s (ID: %s)', file_record.object_key, file_id)
    return file_record
