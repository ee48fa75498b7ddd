"""Business logic for derived preview images."""

import logging
import os
import uuid
from pathlib import Path
from typing import Final

from django.conf import settings

from server.apps.files.exceptions import ThumbnailGenerationError
from server.apps.files.infrastructure.metadata import get_file_extension
from server.apps.files.infrastructure.paths import (
    build_thumb_url,
    ensure_directory,
    user_thumb_dir,
)
from server.apps.files.infrastructure.renderers import (
    ImageRenderer,
    PdfPageRenderer,
    Renderer,
    VideoFrameRenderer,
)

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS: Final = frozenset(('jpg', 'jpeg', 'png', 'gif', 'bmp', 'webp'))
VIDEO_EXTENSIONS: Final = frozenset(('mp4', 'mov', 'avi', 'mkv', 'webm'))
PDF_EXTENSIONS: Final = frozenset(('pdf',))

_DEFAULT_BOX: Final = (400, 400)


def get_thumbnail_box() -> tuple[int, int]:
    """Get bounding box for previews from settings."""
    width, height = getattr(settings, 'FILES_THUMBNAIL_SIZE', _DEFAULT_BOX)
    return int(width), int(height)


def build_renderers() -> dict[frozenset[str], Renderer]:
    """Build the renderer registry from current settings.

    Returns:
        Mapping of extension families to the renderer handling them.
    """
    box = get_thumbnail_box()
    return {
        IMAGE_EXTENSIONS: ImageRenderer(box),
        VIDEO_EXTENSIONS: VideoFrameRenderer(
            width=box[0],
            binary=getattr(settings, 'FILES_FFMPEG_BINARY', 'ffmpeg'),
            timeout=getattr(settings, 'FILES_FFMPEG_TIMEOUT', 60),
        ),
        PDF_EXTENSIONS: PdfPageRenderer(
            box,
            dpi=getattr(settings, 'FILES_THUMBNAIL_PDF_DPI', 150),
        ),
    }


def find_renderer(file_name: str) -> Renderer | None:
    """Pick the renderer for a file, None if it has no preview."""
    extension = get_file_extension(file_name)
    for extensions, renderer in build_renderers().items():
        if extension in extensions:
            return renderer
    return None


def generate_thumbnail(source_path: Path, user_id: int) -> str:
    """Render and store a preview of ``source_path``.

    Args:
        source_path: Finished file on disk.
        user_id: Owner id, selects the thumbnail directory.

    Returns:
        Public URL of the stored preview, or an empty string for file
        types without previews.

    Raises:
        ThumbnailGenerationError: If rendering or storing fails.
    """
    renderer = find_renderer(source_path.name)
    if renderer is None:
        logger.debug('No preview for file type: %s', source_path.name)
        return ''

    preview = renderer.extract_preview(source_path)

    thumb_name = f'thumb_{uuid.uuid4()}.jpg'
    directory = user_thumb_dir(user_id)
    staging = directory / f'.{thumb_name}.tmp'
    try:
        ensure_directory(directory)
        staging.write_bytes(preview)
        os.replace(staging, directory / thumb_name)
    except OSError as exc:
        staging.unlink(missing_ok=True)
        raise ThumbnailGenerationError(
            f'Cannot store preview of {source_path.name}',
        ) from exc

    logger.info(
        'Generated thumbnail %s for %s (%d bytes)',
        thumb_name,
        source_path.name,
        len(preview),
    )
    return build_thumb_url(user_id, thumb_name)


def generate_thumbnail_safely(source_path: Path, user_id: int) -> str:
    """Generate a preview without ever raising.

    Args:
        source_path: Finished file on disk.
        user_id: Owner id.

    Returns:
        Preview URL, or an empty string when there is none or it failed.
    """
    try:
        return generate_thumbnail(source_path, user_id)
    except ThumbnailGenerationError:
        logger.exception('Thumbnail generation failed: %s', source_path)
    except Exception:
        # A broken preview never fails the upload it belongs to
        logger.exception('Unexpected thumbnail failure: %s', source_path)
    return ''
