"""Project-wide test fixtures."""

import pytest

TEST_BUCKET = 'files'


@pytest.fixture(autouse=True)
def _storage_settings(settings):
    """Point the default storage at a moto-compatible test configuration.

    Changing ``STORAGES`` resets Django's storage cache, so every test
    gets a fresh FileStorage with an empty bucket cache.
    """
    settings.STORAGES = {
        'default': {
            'BACKEND': 'vault.apps.files.infrastructure.storage.FileStorage',
            'OPTIONS': {
                'bucket_name': TEST_BUCKET,
                'access_key': 'testing',
                'secret_key': 'testing',
                'endpoint_url': None,
                'public_endpoint_url': None,
                'region_name': 'us-east-1',
                'addressing_style': 'path',
                'file_overwrite': False,
                'default_acl': None,
            },
        },
    }
