"""Database models for files app."""

import uuid
from typing import Final, final, override

from django.db import models

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_CONTENT_TYPE_MAX_LENGTH: Final = 255
_FRIENDLY_TYPE_MAX_LENGTH: Final = 64
_BUCKET_MAX_LENGTH: Final = 63  # S3 bucket naming limit
_OBJECT_KEY_MAX_LENGTH: Final = 1024  # S3 object key limit
_STATUS_MAX_LENGTH: Final = 16


@final
class Folder(models.Model):
    """Folder in the file tree.

    Folders form a forest through ``parent``. A folder without a parent
    is a root folder. Rows are removed only by the folder deletion
    logic, which deletes children before parents; ``PROTECT`` turns any
    out-of-order delete into an error instead of a dangling reference.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    parent = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='sub_folders',
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Folders'  # type: ignore[mutable-override]
        ordering = ['name']

    @override
    def __str__(self) -> str:
        """String representation."""
        return self.name


class FileStatus(models.TextChoices):
    """Upload lifecycle state, independent of soft deletion."""

    PENDING = 'Pending', 'Pending'
    UPLOADED = 'Uploaded', 'Uploaded'
    FAILED = 'Failed', 'Failed'


class ActiveFileManager(models.Manager['FileRecord']):
    """Manager that hides soft-deleted records."""

    @override
    def get_queryset(self) -> models.QuerySet['FileRecord']:
        """Exclude records in the trash."""
        return super().get_queryset().filter(is_deleted=False)


@final
class FileRecord(models.Model):
    """Metadata of an object stored in S3-compatible storage.

    ``status`` and ``is_deleted`` are independent: an uploaded file can
    be soft-deleted, a failed one is usually not. Records in ``Pending``
    or ``Failed`` state may have no object behind ``object_key`` yet.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    file_name = models.CharField(max_length=_NAME_MAX_LENGTH)

    content_type = models.CharField(
        max_length=_CONTENT_TYPE_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Content type reported by the client or the store',
    )

    safe_content_type = models.CharField(
        max_length=_CONTENT_TYPE_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Content type with extension-based fallback',
    )

    friendly_content_type = models.CharField(
        max_length=_FRIENDLY_TYPE_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Display name, e.g. "PDF" or "Image"',
    )

    size = models.BigIntegerField(
        default=0,
        help_text='File size in bytes, refreshed on confirm',
    )

    bucket = models.CharField(max_length=_BUCKET_MAX_LENGTH)

    object_key = models.CharField(
        max_length=_OBJECT_KEY_MAX_LENGTH,
        unique=True,
    )

    folder = models.ForeignKey(
        Folder,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='files',
    )

    status = models.CharField(
        max_length=_STATUS_MAX_LENGTH,
        choices=FileStatus.choices,
        default=FileStatus.PENDING,
    )

    is_deleted = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # The first manager is the default one; trash stays reachable
    # through ``all_objects``.
    objects = ActiveFileManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File record'  # type: ignore[mutable-override]
        verbose_name_plural = 'File records'  # type: ignore[mutable-override]
        ordering = ['-created_at']

        indexes = [
            # Stale pending sweep
            models.Index(
                fields=['status', 'created_at'],
                name='files_status_created_idx',
            ),
            # Stale failed sweep
            models.Index(
                fields=['status', 'updated_at'],
                name='files_status_updated_idx',
            ),
            # Expired trash sweep
            models.Index(
                fields=['is_deleted', 'updated_at'],
                name='files_deleted_updated_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.file_name} ({self.status})'
