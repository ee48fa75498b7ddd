"""Business logic for file catalog operations."""

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Any, BinaryIO, Final

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from server.apps.files.exceptions import FileAlreadyExistsError
from server.apps.files.infrastructure.metadata import (
    calculate_file_checksum,
    classify_file_type,
    detect_mime_type,
    get_buffer_size,
    get_file_category,
    normalize_folder_path,
    validate_file_name,
)
from server.apps.files.infrastructure.paths import (
    allocate_storage_path,
    build_avatar_url,
    ensure_directory,
    user_avatar_dir,
    user_upload_dir,
)
from server.apps.files.models import ROOT_PATH, File, FileStatus, FileType

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)

MY_FILES_CATEGORY: Final = 'my-files'
TRASH_CATEGORY: Final = 'trash'
TYPE_CATEGORIES: Final = ('images', 'documents', 'videos', 'music', 'others')

DEFAULT_SORT: Final = 'time-desc'
_SORT_ORDERINGS: Final = {
    'name-asc': ('name', 'id'),
    'name-desc': ('-name', '-id'),
    'time-asc': ('created_at', 'id'),
    'time-desc': ('-created_at', '-id'),
    'size-asc': ('size_bytes', 'id'),
    'size-desc': ('-size_bytes', '-id'),
}


def _ensure_name_free(
    user: _User,
    name: str,
    relative_path: str,
    exclude_id: int | None = None,
) -> None:
    """Reject a name already used by an active record in the folder."""
    siblings = File.objects.filter(
        user=user,
        name=name,
        relative_path=relative_path,
        status=FileStatus.ACTIVE,
    )
    if exclude_id is not None:
        siblings = siblings.exclude(id=exclude_id)
    if siblings.exists():
        raise FileAlreadyExistsError(
            f'{name} already exists in {relative_path}',
        )


def get_file(user: _User, file_id: int) -> File:
    """Get a record owned by ``user``.

    Args:
        user: Owner of the file.
        file_id: Record id.

    Returns:
        File instance.

    Raises:
        File.DoesNotExist: If no such record belongs to the user.
    """
    return File.objects.get(user=user, id=file_id)


def create_folder(
    user: _User,
    folder_name: str,
    relative_path: str = ROOT_PATH,
) -> File:
    """Create a folder record.

    Folders only exist in the catalog; their content is located by
    ``relative_path`` on the child records.

    Args:
        user: Owner of the folder.
        folder_name: Display name.
        relative_path: Parent folder.

    Returns:
        Created File instance.

    Raises:
        ValidationError: If the name or path is invalid.
        FileAlreadyExistsError: If the name is taken in the parent folder.
    """
    folder_name = validate_file_name(folder_name)
    relative_path = normalize_folder_path(relative_path)

    with transaction.atomic():
        _ensure_name_free(user, folder_name, relative_path)
        folder = File.objects.create(
            user=user,
            name=folder_name,
            storage_path=str(user_upload_dir(user.id) / folder_name),
            relative_path=relative_path,
            file_type=FileType.FOLDER,
            status=FileStatus.ACTIVE,
        )

    logger.info(
        'Created folder %s in %s for user %s (ID: %d)',
        folder_name,
        relative_path,
        user.id,
        folder.id,
    )
    return folder


def create_empty_file(
    user: _User,
    file_name: str,
    relative_path: str = ROOT_PATH,
) -> File:
    """Create an empty file on disk and its record.

    Args:
        user: Owner of the file.
        file_name: Display name.
        relative_path: Folder to place the file in.

    Returns:
        Created File instance.

    Raises:
        ValidationError: If the name or path is invalid.
        FileAlreadyExistsError: If the name is taken in the folder.
    """
    file_name = validate_file_name(file_name)
    relative_path = normalize_folder_path(relative_path)

    _ensure_name_free(user, file_name, relative_path)
    ensure_directory(user_upload_dir(user.id))
    storage_path = allocate_storage_path(user.id, file_name)

    try:
        with storage_path.open('xb'):
            logger.debug('Created empty file: %s', storage_path)
    except FileExistsError as exc:
        raise FileAlreadyExistsError(f'{file_name} already exists') from exc

    try:
        with transaction.atomic():
            file_instance = File.objects.create(
                user=user,
                name=file_name,
                storage_path=str(storage_path),
                relative_path=relative_path,
                size_bytes=0,
                checksum_sha256=calculate_file_checksum(storage_path),
                mime_type=detect_mime_type(file_name),
                file_type=classify_file_type(file_name),
                status=FileStatus.ACTIVE,
            )
    except Exception:
        logger.exception(
            'Database transaction failed, removing empty file: %s',
            storage_path,
        )
        storage_path.unlink(missing_ok=True)
        raise

    logger.info(
        'Created empty file %s for user %s (ID: %d)',
        file_name,
        user.id,
        file_instance.id,
    )
    return file_instance


def rename_file(user: _User, file_id: int, new_name: str) -> File:
    """Change the display name of a record.

    The physical file keeps its location. The type classification
    follows the new extension.

    Args:
        user: Owner of the file.
        file_id: Record id.
        new_name: New display name.

    Returns:
        Updated File instance.

    Raises:
        File.DoesNotExist: If the record is not found.
        ValidationError: If the new name is blank or invalid.
        FileAlreadyExistsError: If the name is taken in the folder.
    """
    new_name = validate_file_name(new_name)

    with transaction.atomic():
        file_instance = File.objects.select_for_update().get(
            user=user,
            id=file_id,
        )
        _ensure_name_free(
            user,
            new_name,
            file_instance.relative_path,
            exclude_id=file_instance.id,
        )
        old_name = file_instance.name
        file_instance.name = new_name
        if not file_instance.is_folder():
            file_instance.file_type = classify_file_type(new_name)
            file_instance.mime_type = detect_mime_type(new_name)
        file_instance.save()

    logger.info(
        'Renamed file %d: %s -> %s',
        file_id,
        old_name,
        new_name,
    )
    return file_instance


def move_file(user: _User, file_id: int, new_relative_path: str) -> File:
    """Move a record to another folder of the user's tree.

    Args:
        user: Owner of the file.
        file_id: Record id.
        new_relative_path: Destination folder.

    Returns:
        Updated File instance.

    Raises:
        File.DoesNotExist: If the record is not found.
        ValidationError: If the path is invalid or a folder is moved
            into itself.
        FileAlreadyExistsError: If the name is taken in the destination.
    """
    new_relative_path = normalize_folder_path(new_relative_path)

    with transaction.atomic():
        file_instance = File.objects.select_for_update().get(
            user=user,
            id=file_id,
        )
        if file_instance.is_folder():
            own_path = _child_path(file_instance)
            if new_relative_path == own_path or new_relative_path.startswith(
                f'{own_path}/',
            ):
                raise ValidationError('Cannot move a folder into itself')
        _ensure_name_free(
            user,
            file_instance.name,
            new_relative_path,
            exclude_id=file_instance.id,
        )
        old_path = file_instance.relative_path
        file_instance.relative_path = new_relative_path
        file_instance.save()

    logger.info(
        'Moved file %d: %s -> %s',
        file_id,
        old_path,
        new_relative_path,
    )
    return file_instance


def _child_path(folder: File) -> str:
    """Folder path that children of ``folder`` carry."""
    if folder.relative_path == ROOT_PATH:
        return f'{ROOT_PATH}{folder.name}'
    return f'{folder.relative_path}/{folder.name}'


def soft_delete_file(user: _User, file_id: int) -> File:
    """Move a record to trash.

    Bytes stay on disk and keep counting against quota.

    Args:
        user: Owner of the file.
        file_id: Record id.

    Returns:
        Updated File instance.

    Raises:
        File.DoesNotExist: If the record is not found.
        InvalidStatusTransitionError: If the record cannot be deleted.
    """
    with transaction.atomic():
        file_instance = File.objects.select_for_update().get(
            user=user,
            id=file_id,
        )
        file_instance.transition_to(FileStatus.DELETED)
        file_instance.save(update_fields=['status', 'modified_at'])

    logger.info('Moved file to trash: %s (ID: %d)', file_instance.name, file_id)
    return file_instance


def list_files(
    user: _User,
    path: str = ROOT_PATH,
    category: str = MY_FILES_CATEGORY,
    sort: str = DEFAULT_SORT,
) -> QuerySet[File]:
    """List records for one view of the user's drive.

    ``my-files`` shows active files and folders directly inside
    ``path``. ``trash`` shows every deleted record. Type categories
    show active files of that type anywhere in the tree; folders only
    appear under ``my-files``.

    Args:
        user: Owner of files.
        path: Folder for the ``my-files`` view.
        category: View name.
        sort: Ordering such as ``name-asc`` or ``size-desc``. Unknown
            values fall back to newest first.

    Returns:
        QuerySet of File objects.

    Raises:
        ValidationError: If the category is unknown.
    """
    files = File.objects.filter(user=user).select_related('user')

    if category == MY_FILES_CATEGORY:
        files = files.filter(
            relative_path=normalize_folder_path(path),
            status=FileStatus.ACTIVE,
        )
    elif category == TRASH_CATEGORY:
        files = files.filter(status=FileStatus.DELETED)
    elif category in TYPE_CATEGORIES:
        file_types = [
            file_type
            for file_type in FileType
            if file_type != FileType.FOLDER
            and get_file_category(file_type) == category
        ]
        files = files.filter(
            status=FileStatus.ACTIVE,
            file_type__in=file_types,
        )
    else:
        raise ValidationError(f'Unknown category: {category}')

    ordering = _SORT_ORDERINGS.get(sort, _SORT_ORDERINGS[DEFAULT_SORT])
    logger.debug(
        'Listing %s for user %s (path=%s, sort=%s)',
        category,
        user.id,
        path,
        sort,
    )
    return files.order_by(*ordering)


def open_file(user: _User, file_id: int) -> BinaryIO:
    """Open a file's content for download.

    Args:
        user: Owner of the file.
        file_id: Record id.

    Returns:
        Binary file object; the caller closes it.

    Raises:
        File.DoesNotExist: If the record is not found, is a folder, or
            its bytes are missing on disk.
    """
    file_instance = get_file(user, file_id)
    if file_instance.is_folder():
        raise File.DoesNotExist(f'{file_instance.name} is a folder')

    storage_path = Path(file_instance.storage_path)
    try:
        return storage_path.open('rb')
    except FileNotFoundError as exc:
        logger.exception('File content missing on disk: %s', storage_path)
        raise File.DoesNotExist(
            f'Content of {file_instance.name} is missing',
        ) from exc


def upload_avatar(user: _User, file_obj: BinaryIO) -> str:
    """Store a new avatar image for ``user``.

    Args:
        user: Owner of the avatar.
        file_obj: Image content.

    Returns:
        Public URL of the stored avatar.

    Raises:
        OSError: If the avatar cannot be written.
    """
    avatar_name = f'avatar_{user.id}{uuid.uuid4()}.png'
    directory = ensure_directory(user_avatar_dir(user.id))
    staging = directory / f'.{avatar_name}.tmp'

    try:
        with staging.open('wb') as output:
            shutil.copyfileobj(file_obj, output, get_buffer_size())
        os.replace(staging, directory / avatar_name)
    except OSError:
        logger.exception('Failed to store avatar for user %s', user.id)
        staging.unlink(missing_ok=True)
        raise

    logger.info('Stored avatar %s for user %s', avatar_name, user.id)
    return build_avatar_url(user.id, avatar_name)
