"""Main settings file for the project.

Settings are split into components and assembled with
django-split-settings. Put machine-specific overrides into
``settings/components/local.py`` (not tracked).
"""

from split_settings.tools import include, optional

include(
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
    'components/retention.py',
    optional('components/local.py'),
)
