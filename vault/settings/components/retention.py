"""Retention sweeper settings."""

from vault.settings.components import config

# How often a sweep cycle runs
FILE_CLEANUP_INTERVAL_MINUTES = config(
    'FILE_CLEANUP_INTERVAL_MINUTES',
    cast=int,
    default=10,
)

# Expiry windows per category
FILE_CLEANUP_PENDING_EXPIRY_MINUTES = config(
    'FILE_CLEANUP_PENDING_EXPIRY_MINUTES',
    cast=int,
    default=30,
)
FILE_CLEANUP_FAILED_EXPIRY_DAYS = config(
    'FILE_CLEANUP_FAILED_EXPIRY_DAYS',
    cast=int,
    default=1,
)
FILE_CLEANUP_DELETED_EXPIRY_DAYS = config(
    'FILE_CLEANUP_DELETED_EXPIRY_DAYS',
    cast=int,
    default=30,
)

# Log what would be removed without touching either store
FILE_CLEANUP_DRY_RUN = config('FILE_CLEANUP_DRY_RUN', cast=bool, default=False)
