"""Django storage configuration for S3-compatible backends.

This module configures django-storages to work with:
- MinIO for local development
- Any S3-compatible service in production

Two endpoints may be configured: the internal one is used for direct
object operations from inside the service network, the public one
replaces it in presigned URLs handed to external clients.
"""

from datetime import timedelta
from typing import Any, Final

from vault.settings.components import config

STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': 'vault.apps.files.infrastructure.storage.FileStorage',
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='files',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default=''),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=''),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'public_endpoint_url': config(
                'AWS_S3_PUBLIC_ENDPOINT_URL',
                default=None,
            ),
            'use_ssl': config('AWS_S3_USE_SSL', cast=bool, default=True),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            # Path-style URLs keep the bucket out of the host name,
            # so the public endpoint can be swapped in verbatim.
            'addressing_style': 'path',
            'file_overwrite': False,
            'default_acl': None,
        },
    },
}

FILES_PRESIGNED_URL_TTL: Final = timedelta(
    minutes=config('FILES_PRESIGNED_URL_TTL_MINUTES', cast=int, default=15),
)
