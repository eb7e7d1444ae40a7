"""Business logic layer for files app.

This package contains all business logic for file and folder operations:
- Folder tree creation, navigation and recursive deletion
- File upload, presigned access, soft and hard deletion
- Retention sweeps of stale and expired file records

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""
