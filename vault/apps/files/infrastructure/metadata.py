"""File name and content type helpers for file records."""

import enum
import mimetypes
import re
import unicodedata
import uuid
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Final

_OCTET_STREAM: Final = 'application/octet-stream'
_MAX_STEM_LENGTH: Final = 100
_UNNAMED: Final = 'unnamed'

_UNSAFE_CHARS: Final = re.compile(r'[^a-zA-Z0-9_-]')
_REPEATED_UNDERSCORES: Final = re.compile(r'_{2,}')


class SimpleFileType(enum.Enum):
    """Coarse file category used for display."""

    PDF = 'PDF'
    WORD = 'Word Document'
    EXCEL = 'Excel Spreadsheet'
    PPT = 'Powerpoint Document'
    IMAGE = 'Image'
    TEXT = 'Text File'
    CSV = 'CSV File'
    ZIP = 'ZIP Archive'
    VIDEO = 'Video'
    AUDIO = 'Audio'
    UNKNOWN = 'Unknown'


_MIME_TO_SIMPLE: Final = {
    'application/pdf': SimpleFileType.PDF,
    'application/msword': SimpleFileType.WORD,
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': SimpleFileType.WORD,  # noqa: E501
    'application/vnd.ms-excel': SimpleFileType.EXCEL,
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet': SimpleFileType.EXCEL,  # noqa: E501
    'application/vnd.ms-powerpoint': SimpleFileType.PPT,
    'application/vnd.openxmlformats-officedocument.presentationml.presentation': SimpleFileType.PPT,  # noqa: E501
    'text/plain': SimpleFileType.TEXT,
    'text/csv': SimpleFileType.CSV,
    'application/zip': SimpleFileType.ZIP,
    'application/x-zip-compressed': SimpleFileType.ZIP,
    'application/x-rar-compressed': SimpleFileType.ZIP,
    'application/vnd.rar': SimpleFileType.ZIP,
    'application/x-7z-compressed': SimpleFileType.ZIP,
    'application/gzip': SimpleFileType.ZIP,
}

# Whole families that map onto one category
_MIME_PREFIX_TO_SIMPLE: Final = {
    'image/': SimpleFileType.IMAGE,
    'audio/': SimpleFileType.AUDIO,
    'video/': SimpleFileType.VIDEO,
}

_SIMPLE_TO_DEFAULT_MIME: Final = {
    SimpleFileType.PDF: 'application/pdf',
    SimpleFileType.WORD: 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',  # noqa: E501
    SimpleFileType.EXCEL: 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',  # noqa: E501
    SimpleFileType.PPT: 'application/vnd.openxmlformats-officedocument.presentationml.presentation',  # noqa: E501
    SimpleFileType.TEXT: 'text/plain',
    SimpleFileType.CSV: 'text/csv',
    SimpleFileType.ZIP: 'application/zip',
    SimpleFileType.IMAGE: 'image/jpeg',
    SimpleFileType.AUDIO: 'audio/mpeg',
    SimpleFileType.VIDEO: 'video/mp4',
}


def sanitize_file_name(file_name: str, max_length: int = _MAX_STEM_LENGTH) -> str:
    """Make a file name safe for object keys and file systems.

    Accents are stripped, every character outside ``[a-zA-Z0-9_-]``
    in the stem becomes ``_``, repeated underscores collapse, and the
    result is lower-cased.

    Args:
        file_name: Name supplied by the client.
        max_length: Maximum stem length.

    Returns:
        Sanitized name, or ``'unnamed'`` if nothing usable is left.
    """
    if not file_name or not file_name.strip():
        return _UNNAMED

    path = PurePosixPath(file_name.replace('\\', '/'))
    stem = path.stem
    suffix = path.suffix

    decomposed = unicodedata.normalize('NFKD', stem)
    stem = ''.join(
        char for char in decomposed if not unicodedata.combining(char)
    )
    stem = _UNSAFE_CHARS.sub('_', stem)
    stem = _REPEATED_UNDERSCORES.sub('_', stem)
    stem = stem.strip('_.')[:max_length]

    sanitized = f'{stem}{suffix}'.lower()
    return sanitized or _UNNAMED


def build_object_key(file_id: uuid.UUID, sanitized_name: str) -> str:
    """Build the object key for a new file record.

    Args:
        file_id: ID of the file record.
        sanitized_name: Output of ``sanitize_file_name``.

    Returns:
        Key of the form ``YYYYMMDD/<id>_<name>``.
    """
    day = datetime.now(tz=UTC).strftime('%Y%m%d')
    return f'{day}/{file_id}_{sanitized_name}'


def get_file_extension(file_name: str) -> str:
    """Get file extension from filename.

    Args:
        file_name: Filename (e.g., 'document.pdf').

    Returns:
        Extension with dot, lowercase (e.g., '.pdf').
        Returns empty string if no extension.
    """
    return PurePosixPath(file_name).suffix.lower()


def to_simple_file_type(content_type: str, file_name: str = '') -> SimpleFileType:
    """Classify a file by content type, falling back to its extension.

    Args:
        content_type: Reported content type, may be empty.
        file_name: File name used when the content type is unknown.

    Returns:
        Matching SimpleFileType, UNKNOWN if nothing matches.
    """
    simple_type = _classify_mime(content_type)
    if simple_type is not SimpleFileType.UNKNOWN:
        return simple_type

    if file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        if guessed:
            return _classify_mime(guessed)
    return SimpleFileType.UNKNOWN


def get_safe_content_type(content_type: str, file_name: str) -> str:
    """Pick a content type that is safe to serve the file with.

    A specific reported type wins; a missing or generic one is replaced
    by a type guessed from the extension, then by the category default.

    Args:
        content_type: Reported content type, may be empty.
        file_name: File name.

    Returns:
        Content type string.
    """
    if content_type and content_type.lower() != _OCTET_STREAM:
        return content_type

    guessed, _ = mimetypes.guess_type(file_name)
    if guessed:
        return guessed

    simple_type = to_simple_file_type(content_type, file_name)
    return _SIMPLE_TO_DEFAULT_MIME.get(simple_type, _OCTET_STREAM)


def get_friendly_content_type(content_type: str, file_name: str) -> str:
    """Display name for the file category, e.g. 'PDF'."""
    return to_simple_file_type(content_type, file_name).value


def _classify_mime(content_type: str) -> SimpleFileType:
    if not content_type:
        return SimpleFileType.UNKNOWN
    normalized = content_type.split(';', 1)[0].strip().lower()
    if normalized in _MIME_TO_SIMPLE:
        return _MIME_TO_SIMPLE[normalized]
    for prefix, simple_type in _MIME_PREFIX_TO_SIMPLE.items():
        if normalized.startswith(prefix):
            return simple_type
    return SimpleFileType.UNKNOWN
