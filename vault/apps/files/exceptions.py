"""Exceptions for files app.

Missing folders and file records are reported with the models' own
``DoesNotExist`` exceptions, the same way Django queries do.
"""

from django.core.exceptions import ImproperlyConfigured


class StorageError(Exception):
    """Raised when an object store operation fails."""

    def __init__(self, bucket: str, object_key: str, reason: str) -> None:
        """Initialize StorageError.

        Args:
            bucket: Bucket the operation targeted.
            object_key: Object key the operation targeted.
            reason: Human readable failure reason.
        """
        self.bucket = bucket
        self.object_key = object_key
        self.reason = reason
        super().__init__(f'{bucket}/{object_key}: {reason}')


class ObjectNotFoundError(StorageError):
    """Raised when the target object does not exist in the store."""


class StorageConfigurationError(ImproperlyConfigured):
    """Raised when the object store is missing credentials or a bucket."""


class MetadataTransactionError(Exception):
    """Raised when a metadata transaction fails and was rolled back."""


class OperationCancelledError(Exception):
    """Raised when the caller cancelled the operation or its deadline passed."""


class UploadConfirmationError(Exception):
    """Raised when a pending upload has no object in the store."""

    def __init__(self, file_id: object, object_key: str) -> None:
        """Initialize UploadConfirmationError.

        Args:
            file_id: ID of the file record being confirmed.
            object_key: Object key that could not be found.
        """
        self.file_id = file_id
        self.object_key = object_key
        super().__init__(
            f'Upload for file {file_id} not found in storage: {object_key}',
        )


class BulkDeleteNotForcedError(Exception):
    """Raised when bulk hard delete is requested without ``force=True``."""
