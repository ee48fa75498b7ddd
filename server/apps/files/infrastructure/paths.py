"""Physical directories and public URLs for user content.

Layout under the configured roots::

    {FILES_UPLOAD_ROOT}/{user_id}/{hex}_{file_name}    merged files
    {FILES_UPLOAD_ROOT}/thumb/{user_id}/{thumb_name}   thumbnails
    {FILES_UPLOAD_ROOT}/avatar/{user_id}/{avatar}      avatars
    {FILES_TEMP_ROOT}/{user_id}/{chunk_name}           chunk blobs

Settings are read on every call so tests can override them.
"""

import logging
import uuid
from pathlib import Path
from typing import Final

from django.conf import settings

from server.apps.files.infrastructure.locks import KeyedLock

logger = logging.getLogger(__name__)

_THUMB_SEGMENT: Final = 'thumb'
_AVATAR_SEGMENT: Final = 'avatar'

_directory_locks = KeyedLock()


def get_upload_root() -> Path:
    """Get root directory for merged files."""
    return Path(getattr(settings, 'FILES_UPLOAD_ROOT', 'media/upload'))


def get_temp_root() -> Path:
    """Get root directory for chunk blobs."""
    return Path(getattr(settings, 'FILES_TEMP_ROOT', 'media/temp'))


def get_public_base_url() -> str:
    """Get base URL for public asset links, without trailing slash."""
    base_url = getattr(settings, 'FILES_PUBLIC_BASE_URL', '')
    return base_url.rstrip('/')


def user_upload_dir(user_id: int) -> Path:
    """Directory holding a user's merged files."""
    return get_upload_root() / str(user_id)


def allocate_storage_path(user_id: int, file_name: str) -> Path:
    """Pick a fresh location on disk for a new file of ``user_id``.

    The display name and folder of a record can change independently of
    its bytes, so every stored file gets a unique physical name.

    Args:
        user_id: Owner id.
        file_name: Display name, kept as a readable suffix.

    Returns:
        Unused path inside the user's upload directory.
    """
    return user_upload_dir(user_id) / f'{uuid.uuid4().hex}_{file_name}'


def user_temp_dir(user_id: int) -> Path:
    """Directory holding a user's chunk blobs."""
    return get_temp_root() / str(user_id)


def user_thumb_dir(user_id: int) -> Path:
    """Directory holding a user's thumbnails."""
    return get_upload_root() / _THUMB_SEGMENT / str(user_id)


def user_avatar_dir(user_id: int) -> Path:
    """Directory holding a user's avatars."""
    return get_upload_root() / _AVATAR_SEGMENT / str(user_id)


def ensure_directory(directory: Path) -> Path:
    """Create ``directory`` (and parents) if it does not exist.

    Creation is serialized per resolved path, so concurrent first
    uploads for the same user do not race on ``mkdir``.

    Args:
        directory: Directory to create.

    Returns:
        The same directory.
    """
    key = str(directory.resolve())
    with _directory_locks.hold(key):
        if not directory.is_dir():
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug('Created directory: %s', directory)
    return directory


def build_thumb_url(user_id: int, thumb_name: str) -> str:
    """Public URL of a thumbnail.

    Args:
        user_id: Owner id.
        thumb_name: Thumbnail file name.

    Returns:
        URL in the form ``{base}/thumb/{user_id}/{thumb_name}``.
    """
    return f'{get_public_base_url()}/{_THUMB_SEGMENT}/{user_id}/{thumb_name}'


def build_avatar_url(user_id: int, avatar_name: str) -> str:
    """Public URL of an avatar.

    Args:
        user_id: Owner id.
        avatar_name: Avatar file name.

    Returns:
        URL in the form ``{base}/avatar/{user_id}/{avatar_name}``.
    """
    return f'{get_public_base_url()}/{_AVATAR_SEGMENT}/{user_id}/{avatar_name}'


def thumb_path_from_url(thumbnail_url: str) -> Path | None:
    """Map a thumbnail URL back to its file on disk.

    Args:
        thumbnail_url: URL produced by ``build_thumb_url``.

    Returns:
        Path of the thumbnail, or None if the URL is empty or foreign.
    """
    prefix = f'{get_public_base_url()}/{_THUMB_SEGMENT}/'
    if not thumbnail_url or not thumbnail_url.startswith(prefix):
        return None
    user_segment, _, thumb_name = thumbnail_url[len(prefix):].partition('/')
    if not user_segment or not thumb_name or '/' in thumb_name:
        return None
    return get_upload_root() / _THUMB_SEGMENT / user_segment / thumb_name
