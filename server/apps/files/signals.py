"""Signal handlers for files app."""

import logging
from pathlib import Path

from django.db.models.signals import post_delete
from django.dispatch import receiver

from server.apps.files.infrastructure.paths import thumb_path_from_url
from server.apps.files.models import File

logger = logging.getLogger(__name__)


def _remove_from_disk(path: Path) -> None:
    try:
        if path.is_file():
            path.unlink()
            logger.info('File deleted from disk: %s', path)
        else:
            logger.warning('File not found on disk (already deleted?): %s', path)
    except OSError:
        # DB delete already succeeded, the orphan is left for an operator
        logger.exception('Failed to delete file from disk (orphaned): %s', path)


@receiver(post_delete, sender=File)
def delete_file_from_storage(
    sender: type[File],
    instance: File,
    **kwargs: object,
) -> None:
    """Delete a record's bytes and preview when the record is deleted.

    Runs for any ORM delete (admin, user cascade). Folders have no
    bytes. Content still referenced by another record is kept.

    Args:
        sender: The File model class.
        instance: The File instance being deleted.
        **kwargs: Additional signal arguments.
    """
    thumb_path = thumb_path_from_url(instance.thumbnail_url)
    if thumb_path is not None:
        _remove_from_disk(thumb_path)

    if instance.is_folder() or not instance.storage_path:
        return

    if File.objects.filter(storage_path=instance.storage_path).exists():
        logger.info(
            'Keeping %s, still referenced by another record',
            instance.storage_path,
        )
        return

    logger.info(
        'Deleting file from disk after DB delete: %s',
        instance.storage_path,
    )
    _remove_from_disk(Path(instance.storage_path))
