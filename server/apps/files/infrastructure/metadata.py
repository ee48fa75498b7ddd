"""Metadata extraction utilities for files."""

import hashlib
import mimetypes
from pathlib import Path
from typing import BinaryIO, Final

from django.conf import settings
from django.core.exceptions import ValidationError

from server.apps.files.models import FileType

_DEFAULT_BUFFER_SIZE: Final = 64 * 1024

_EXTENSION_TYPES: Final = {
    **dict.fromkeys(
        ('jpg', 'jpeg', 'png', 'gif', 'bmp', 'svg', 'webp'),
        FileType.IMAGE,
    ),
    **dict.fromkeys(
        ('pdf', 'doc', 'docx', 'xls', 'xlsx', 'ppt', 'pptx', 'txt'),
        FileType.DOCUMENT,
    ),
    **dict.fromkeys(
        ('mp4', 'avi', 'mov', 'mkv', 'webm'),
        FileType.VIDEO,
    ),
    **dict.fromkeys(('mp3', 'wav', 'flac'), FileType.AUDIO),
    **dict.fromkeys(('zip', 'rar', '7z', 'tar', 'gz'), FileType.ARCHIVE),
    **dict.fromkeys(
        ('java', 'py', 'js', 'html', 'css', 'xml', 'json'),
        FileType.CODE,
    ),
    **dict.fromkeys(('exe', 'msi', 'bat', 'sh'), FileType.EXECUTABLE),
}

# Listing category for each non-folder type
_TYPE_CATEGORIES: Final = {
    FileType.IMAGE: 'images',
    FileType.DOCUMENT: 'documents',
    FileType.CODE: 'documents',
    FileType.VIDEO: 'videos',
    FileType.AUDIO: 'music',
}
OTHERS_CATEGORY: Final = 'others'

_FORBIDDEN_NAME_PARTS: Final = ('/', '\\')


def get_buffer_size() -> int:
    """Get I/O buffer size for streaming copies and hashing."""
    return getattr(settings, 'FILES_MERGE_BUFFER_SIZE', _DEFAULT_BUFFER_SIZE)


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from the filename extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return 'application/octet-stream'
    return mime_type


def calculate_checksum(file_obj: BinaryIO) -> str:
    """Calculate SHA256 checksum of a file object.

    Reads the file in chunks and resets the pointer to the beginning
    before and after.

    Args:
        file_obj: Seekable file-like object to checksum.

    Returns:
        Hex-encoded SHA256 hash string.
    """
    sha256_hash = hashlib.sha256()
    buffer_size = get_buffer_size()

    file_obj.seek(0)
    for chunk in iter(lambda: file_obj.read(buffer_size), b''):
        sha256_hash.update(chunk)
    file_obj.seek(0)

    return sha256_hash.hexdigest()


def calculate_file_checksum(path: Path) -> str:
    """Calculate SHA256 checksum of a file on disk.

    Args:
        path: File to hash.

    Returns:
        Hex-encoded SHA256 hash string.

    Raises:
        OSError: If the file cannot be read.
    """
    with path.open('rb') as file_obj:
        return calculate_checksum(file_obj)


def get_file_extension(filename: str) -> str:
    """Get file extension from filename.

    Args:
        filename: Filename (e.g., 'document.pdf').

    Returns:
        Extension without dot, lowercase (e.g., 'pdf').
        Returns empty string if no extension.
    """
    extension = Path(filename).suffix
    return extension.lstrip('.').lower()


def classify_file_type(filename: str) -> FileType:
    """Classify a file by its extension.

    Args:
        filename: Filename with extension.

    Returns:
        FileType member, ``FileType.OTHER`` for unknown extensions.
    """
    return _EXTENSION_TYPES.get(get_file_extension(filename), FileType.OTHER)


def get_file_category(file_type: str) -> str:
    """Listing category of a file type.

    Example: 'code' -> 'documents', 'archive' -> 'others'

    Args:
        file_type: FileType value.

    Returns:
        Category name.
    """
    return _TYPE_CATEGORIES.get(FileType(file_type), OTHERS_CATEGORY)


def validate_file_name(name: str) -> str:
    """Validate a display name used for a file or folder.

    Args:
        name: Proposed name.

    Returns:
        The name with surrounding whitespace stripped.

    Raises:
        ValidationError: If the name is blank, contains a path separator
            or is a relative path component.
    """
    cleaned = name.strip() if name else ''
    if not cleaned:
        raise ValidationError('File name cannot be empty')
    if any(part in cleaned for part in _FORBIDDEN_NAME_PARTS):
        raise ValidationError(f'File name cannot contain a path separator: {name}')
    if cleaned in {'.', '..'}:
        raise ValidationError(f'Invalid file name: {name}')
    return cleaned


def normalize_folder_path(path: str) -> str:
    """Normalize a folder position in the user's tree.

    Example: 'docs/reports/' -> '/docs/reports', '' -> '/'

    Args:
        path: Folder path as sent by the client.

    Returns:
        Absolute folder path without trailing slash.

    Raises:
        ValidationError: If the path contains '.' or '..' components.
    """
    parts = [part for part in (path or '').replace('\\', '/').split('/') if part]
    if any(part in {'.', '..'} for part in parts):
        raise ValidationError(f'Invalid folder path: {path}')
    return '/' + '/'.join(parts)
