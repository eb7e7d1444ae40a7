"""Infrastructure layer for files app.

This package contains integrations with external systems:
- Object store adapter (S3/MinIO)
- File name sanitizing and content type derivation

Keep infrastructure concerns separate from business logic.
"""
