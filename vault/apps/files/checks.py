"""System checks for files app."""

from typing import Any

from django.conf import settings
from django.core.checks import CheckMessage, Error, Tags, register


@register(Tags.compatibility)
def check_storage_configuration(
    app_configs: Any = None,
    **kwargs: Any,
) -> list[CheckMessage]:
    """Refuse to start without object store credentials and bucket.

    Args:
        app_configs: App configs to check (unused).
        kwargs: Additional check arguments.

    Returns:
        List of check errors, empty when the configuration is complete.
    """
    options = settings.STORAGES.get('default', {}).get('OPTIONS', {})
    errors: list[CheckMessage] = []

    if not options.get('bucket_name'):
        errors.append(Error(
            'Object store bucket is not configured.',
            hint='Set AWS_STORAGE_BUCKET_NAME.',
            id='files.E001',
        ))
    if not options.get('access_key') or not options.get('secret_key'):
        errors.append(Error(
            'Object store credentials are not configured.',
            hint='Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY.',
            id='files.E002',
        ))
    return errors
