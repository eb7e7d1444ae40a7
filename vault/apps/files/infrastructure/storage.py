"""Custom storage backend for S3-compatible storage."""

import logging
from datetime import timedelta
from typing import Any, BinaryIO, Final, final, override
from urllib.parse import urlsplit, urlunsplit

from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from storages.backends.s3 import S3Storage
from storages.utils import setting

from vault.apps.files.cancellation import NEVER_CANCELLED, CancellationToken
from vault.apps.files.exceptions import (
    ObjectNotFoundError,
    StorageConfigurationError,
    StorageError,
)

logger = logging.getLogger(__name__)

# Error codes S3-compatible services use for a missing key or bucket
_NOT_FOUND_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound', 'NoSuchBucket'))

# Regions where CreateBucket must not send a LocationConstraint
_DEFAULT_REGIONS: Final = frozenset(('', 'us-east-1', 'auto'))


def _is_not_found(error: ClientError) -> bool:
    code = error.response.get('Error', {}).get('Code', '')
    return str(code) in _NOT_FOUND_CODES


@final
class FileStorage(S3Storage):
    """Object store adapter for file records.

    Extends django-storages S3Storage with bucket-addressed operations:
    - Lazy bucket creation with an in-process cache of checked buckets
    - Presigned GET/PUT URLs rewritten to the public endpoint
    - ``ObjectNotFoundError`` for missing objects, ``StorageError``
      for every other store failure

    The bucket cache is an instance attribute and is never evicted.
    Concurrent callers may both probe a bucket before it is cached;
    set insertion is idempotent, so no lock is taken.
    """

    def __init__(self, **settings: Any) -> None:
        """Initialize the backend and validate its configuration.

        Args:
            settings: django-storages options from ``STORAGES``.

        Raises:
            StorageConfigurationError: If credentials or bucket are missing.
        """
        super().__init__(**settings)
        if not self.bucket_name:
            raise StorageConfigurationError('Object store bucket is not set')
        if not self.access_key or not self.secret_key:
            raise StorageConfigurationError(
                'Object store credentials are not set',
            )
        self._validated_buckets: set[str] = set()

    @override
    def get_default_settings(self) -> dict[str, Any]:
        """Add the public endpoint to django-storages defaults.

        Returns:
            Default settings dictionary.
        """
        default_settings = super().get_default_settings()
        default_settings['public_endpoint_url'] = setting(
            'AWS_S3_PUBLIC_ENDPOINT_URL',
        )
        return default_settings

    @property
    def client(self) -> BaseClient:
        """Low-level boto3 client bound to the internal endpoint."""
        return self.connection.meta.client

    @property
    def validated_buckets(self) -> frozenset[str]:
        """Buckets already known to exist."""
        return frozenset(self._validated_buckets)

    def ensure_bucket(
        self,
        bucket: str,
        cancel_token: CancellationToken = NEVER_CANCELLED,
    ) -> None:
        """Create the bucket if it does not exist yet.

        Args:
            bucket: Bucket name.
            cancel_token: Caller's cancellation token.

        Raises:
            StorageError: If the bucket cannot be checked or created.
        """
        if bucket in self._validated_buckets:
            return

        cancel_token.raise_if_cancelled()
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as error:
            if not _is_not_found(error):
                raise StorageError(bucket, '', str(error)) from error
            self._create_bucket(bucket)
        except BotoCoreError as error:
            raise StorageError(bucket, '', str(error)) from error

        self._validated_buckets.add(bucket)

    def put_object(  # noqa: WPS211
        self,
        bucket: str,
        object_key: str,
        stream: BinaryIO,
        content_type: str,
        cancel_token: CancellationToken = NEVER_CANCELLED,
    ) -> None:
        """Upload an object.

        Args:
            bucket: Bucket name.
            object_key: Object key.
            stream: Readable binary stream with the content.
            content_type: Content type stored with the object.
            cancel_token: Caller's cancellation token.

        Raises:
            StorageError: If the upload fails.
        """
        self.ensure_bucket(bucket, cancel_token)
        cancel_token.raise_if_cancelled()
        logger.info('Uploading object to storage: %s/%s', bucket, object_key)
        try:
            self.client.put_object(
                Bucket=bucket,
                Key=object_key,
                Body=stream,
                ContentType=content_type or 'application/octet-stream',
            )
        except (BotoCoreError, ClientError) as error:
            logger.exception(
                'Failed to upload object to storage: %s/%s',
                bucket,
                object_key,
            )
            raise StorageError(bucket, object_key, str(error)) from error
        logger.info('Successfully uploaded object: %s/%s', bucket, object_key)

    def delete_object(
        self,
        bucket: str,
        object_key: str,
        cancel_token: CancellationToken = NEVER_CANCELLED,
    ) -> None:
        """Delete an object.

        S3 deletes succeed silently for missing keys, so the object is
        looked up first to report absence explicitly.

        Args:
            bucket: Bucket name.
            object_key: Object key.
            cancel_token: Caller's cancellation token.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: If the delete fails for any other reason.
        """
        self.stat_object(bucket, object_key, cancel_token)
        cancel_token.raise_if_cancelled()
        logger.info('Deleting object from storage: %s/%s', bucket, object_key)
        try:
            self.client.delete_object(Bucket=bucket, Key=object_key)
        except ClientError as error:
            if _is_not_found(error):
                raise ObjectNotFoundError(
                    bucket,
                    object_key,
                    'object not found',
                ) from error
            raise StorageError(bucket, object_key, str(error)) from error
        except BotoCoreError as error:
            raise StorageError(bucket, object_key, str(error)) from error
        logger.info('Successfully deleted object: %s/%s', bucket, object_key)

    def stat_object(
        self,
        bucket: str,
        object_key: str,
        cancel_token: CancellationToken = NEVER_CANCELLED,
    ) -> tuple[int, str]:
        """Read size and content type of an object.

        Args:
            bucket: Bucket name.
            object_key: Object key.
            cancel_token: Caller's cancellation token.

        Returns:
            Tuple of (size in bytes, content type).

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageError: If the lookup fails for any other reason.
        """
        cancel_token.raise_if_cancelled()
        try:
            response = self.client.head_object(Bucket=bucket, Key=object_key)
        except ClientError as error:
            if _is_not_found(error):
                raise ObjectNotFoundError(
                    bucket,
                    object_key,
                    'object not found',
                ) from error
            raise StorageError(bucket, object_key, str(error)) from error
        except BotoCoreError as error:
            raise StorageError(bucket, object_key, str(error)) from error
        return response['ContentLength'], response.get('ContentType', '')

    def presigned_get_url(
        self,
        bucket: str,
        object_key: str,
        ttl: timedelta,
        cancel_token: CancellationToken = NEVER_CANCELLED,
    ) -> str:
        """Build a time-limited download URL.

        Args:
            bucket: Bucket name.
            object_key: Object key.
            ttl: URL lifetime.
            cancel_token: Caller's cancellation token.

        Returns:
            Presigned URL on the public endpoint.
        """
        cancel_token.raise_if_cancelled()
        return self._presign('get_object', bucket, object_key, ttl)

    def presigned_put_url(
        self,
        bucket: str,
        object_key: str,
        ttl: timedelta,
        cancel_token: CancellationToken = NEVER_CANCELLED,
    ) -> str:
        """Build a time-limited upload URL, creating the bucket if needed.

        Args:
            bucket: Bucket name.
            object_key: Object key.
            ttl: URL lifetime.
            cancel_token: Caller's cancellation token.

        Returns:
            Presigned URL on the public endpoint.
        """
        self.ensure_bucket(bucket, cancel_token)
        cancel_token.raise_if_cancelled()
        return self._presign('put_object', bucket, object_key, ttl)

    def rollback_upload(self, bucket: str, object_key: str) -> None:
        """Delete uploaded object for DB transaction rollback.

        This is a best-effort operation: failures are logged, not
        raised, because the DB rollback has already happened. The
        orphaned object is left for manual cleanup.

        Args:
            bucket: Bucket name.
            object_key: Object key of the uploaded object.
        """
        try:
            logger.warning(
                'Rolling back upload, deleting object: %s/%s',
                bucket,
                object_key,
            )
            self.delete_object(bucket, object_key)
        except StorageError:
            logger.exception(
                'Failed to rollback upload, orphaned object: %s/%s',
                bucket,
                object_key,
            )

    def to_public_url(self, url: str) -> str:
        """Swap the internal endpoint of a URL for the public one.

        Args:
            url: URL generated against the internal endpoint.

        Returns:
            URL with the public scheme and authority, and the public
            path prefix (if any) in front of the object path, or
            ``url`` unchanged when no public endpoint is configured.
        """
        if not self.public_endpoint_url:
            return url
        public = urlsplit(self.public_endpoint_url)
        parts = urlsplit(url)
        return urlunsplit((
            public.scheme or parts.scheme,
            public.netloc,
            f'{public.path.rstrip("/")}{parts.path}',
            parts.query,
            parts.fragment,
        ))

    def _presign(
        self,
        client_method: str,
        bucket: str,
        object_key: str,
        ttl: timedelta,
    ) -> str:
        try:
            url = self.client.generate_presigned_url(
                ClientMethod=client_method,
                Params={'Bucket': bucket, 'Key': object_key},
                ExpiresIn=int(ttl.total_seconds()),
            )
        except (BotoCoreError, ClientError) as error:
            raise StorageError(bucket, object_key, str(error)) from error
        return self.to_public_url(url)

    def _create_bucket(self, bucket: str) -> None:
        logger.info('Creating bucket: %s', bucket)
        params: dict[str, Any] = {'Bucket': bucket}
        if (self.region_name or '') not in _DEFAULT_REGIONS:
            params['CreateBucketConfiguration'] = {
                'LocationConstraint': self.region_name,
            }
        try:
            self.client.create_bucket(**params)
        except ClientError as error:
            code = error.response.get('Error', {}).get('Code', '')
            if code not in {'BucketAlreadyOwnedByYou', 'BucketAlreadyExists'}:
                raise StorageError(bucket, '', str(error)) from error
        except BotoCoreError as error:
            raise StorageError(bucket, '', str(error)) from error
