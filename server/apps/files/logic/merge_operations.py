"""Business logic for assembling uploaded chunks into a file."""

import logging
import os
import uuid
from pathlib import Path
from typing import Any

from django.db import transaction

from server.apps.files.exceptions import (
    FileAlreadyExistsError,
    IncompleteUploadError,
    InvalidChunkCountError,
    MergeFailedError,
    MergeInProgressError,
    SizeMismatchError,
)
from server.apps.files.infrastructure import chunk_store, workers
from server.apps.files.infrastructure.locks import SingleFlight
from server.apps.files.infrastructure.metadata import (
    calculate_file_checksum,
    classify_file_type,
    detect_mime_type,
    get_buffer_size,
    normalize_folder_path,
    validate_file_name,
)
from server.apps.files.infrastructure.paths import (
    allocate_storage_path,
    ensure_directory,
    thumb_path_from_url,
)
from server.apps.files.logic.quota_operations import adjust_usage, check_quota
from server.apps.files.logic.thumbnail_operations import (
    generate_thumbnail_safely,
)
from server.apps.files.models import ROOT_PATH, File, FileStatus

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)

_merge_gate = SingleFlight()


def get_merge_gate() -> SingleFlight:
    """Gate admitting one merge per (user id, file name)."""
    return _merge_gate


def merge_chunks(  # noqa: WPS211
    user: _User,
    file_name: str,
    expected_size: int,
    total_chunks: int,
    relative_path: str = ROOT_PATH,
) -> File:
    """Assemble stored chunks into the final file and record it.

    Steps, all-or-nothing from the caller's point of view:

    1. Check every chunk is present and non-empty.
    2. Admit the final size against the user's quota.
    3. Stream the chunks in order into a temporary sibling of the
       target, verify the byte count and hash it.
    4. Publish with an atomic rename over the target.
    5. Render a preview (never fails the merge).
    6. Save the file record and commit quota in one transaction.

    A merge over an active file of the same name in the same folder
    replaces its content and record, and charges only the size
    difference. Any other merge stores its bytes at a fresh path, so
    renamed, moved and trashed records keep their content.

    Chunks are removed in the background once the merge got past the
    completeness check, whatever the outcome. An incomplete upload
    keeps its chunks so the client can send the missing ones.

    Args:
        user: Owner of the upload.
        file_name: Name of the uploaded file.
        expected_size: Final size declared by the client, in bytes.
        total_chunks: Number of chunks in the upload.
        relative_path: Folder to show the file in.

    Returns:
        The active File record.

    Raises:
        InvalidChunkCountError: If ``total_chunks`` is not positive.
        ValueError: If ``expected_size`` is negative.
        ValidationError: If the name or folder path is invalid.
        MergeInProgressError: If the same file is already being merged.
        IncompleteUploadError: If a chunk is missing or empty.
        FileAlreadyExistsError: If a folder has the same name.
        QuotaExceededError: If the file does not fit the quota.
        SizeMismatchError: If merged bytes differ from ``expected_size``.
        MergeFailedError: If storage I/O fails.
    """
    file_name = validate_file_name(file_name)
    relative_path = normalize_folder_path(relative_path)
    if total_chunks <= 0:
        raise InvalidChunkCountError(total_chunks)
    if expected_size < 0:
        raise ValueError(f'Expected size cannot be negative: {expected_size}')

    gate_key = (user.id, file_name)
    if not _merge_gate.try_enter(gate_key):
        logger.warning(
            'Merge of %s for user %s already in progress',
            file_name,
            user.id,
        )
        raise MergeInProgressError(user.id, file_name)

    try:
        missing_index = chunk_store.first_missing_index(
            user.id,
            file_name,
            total_chunks,
        )
        if missing_index is not None:
            logger.info(
                'Cannot merge %s for user %s: chunk %d missing',
                file_name,
                user.id,
                missing_index,
            )
            raise IncompleteUploadError(file_name, missing_index)

        try:
            return _merge_complete_upload(
                user,
                file_name,
                expected_size,
                total_chunks,
                relative_path,
            )
        finally:
            workers.run_in_background(
                f'chunk cleanup of {file_name} for user {user.id}',
                chunk_store.delete_chunks,
                user.id,
                file_name,
                total_chunks,
            )
    finally:
        _merge_gate.leave(gate_key)


def _merge_complete_upload(  # noqa: WPS211
    user: _User,
    file_name: str,
    expected_size: int,
    total_chunks: int,
    relative_path: str,
) -> File:
    logger.info(
        'Merging %s for user %s (%d chunks, %d bytes)',
        file_name,
        user.id,
        total_chunks,
        expected_size,
    )
    previous = File.objects.filter(
        user=user,
        name=file_name,
        relative_path=relative_path,
        status=FileStatus.ACTIVE,
    ).first()
    if previous is not None and previous.is_folder():
        raise FileAlreadyExistsError(
            f'A folder named {file_name} exists in {relative_path}',
        )

    if previous is None:
        final_path = allocate_storage_path(user.id, file_name)
        previous_size = 0
    else:
        final_path = Path(previous.storage_path)
        previous_size = previous.size_bytes

    check_quota(user, max(0, expected_size - previous_size))

    checksum = _write_and_publish(
        user.id,
        file_name,
        expected_size,
        total_chunks,
        final_path,
    )
    thumbnail_url = generate_thumbnail_safely(final_path, user.id)

    try:
        with transaction.atomic():
            record = _save_record(
                user,
                previous,
                file_name,
                final_path,
                relative_path,
                expected_size,
                checksum,
                thumbnail_url,
            )
            adjust_usage(user, previous_size, expected_size)
    except Exception:
        logger.exception(
            'Database commit failed, rolling back merge of %s',
            final_path,
        )
        if previous is None:
            _remove_quietly(final_path)
        else:
            logger.error(
                'Content of %s was replaced but its record was not updated',
                final_path,
            )
        _remove_thumbnail(thumbnail_url)
        raise

    if previous is not None and previous.thumbnail_url != thumbnail_url:
        _remove_thumbnail(previous.thumbnail_url)

    logger.info(
        'Merged %s for user %s: %d bytes, record %d',
        file_name,
        user.id,
        expected_size,
        record.id,
    )
    return record


def _write_and_publish(  # noqa: WPS211
    user_id: int,
    file_name: str,
    expected_size: int,
    total_chunks: int,
    final_path: Path,
) -> str:
    """Concatenate, verify and publish; return the SHA256 of the content."""
    staging = final_path.with_name(f'{final_path.name}.tmp.{uuid.uuid4().hex}')
    try:
        ensure_directory(final_path.parent)
        written = _concatenate(user_id, file_name, total_chunks, staging)
        if written != expected_size:
            logger.warning(
                'Size mismatch merging %s: expected %d, got %d',
                file_name,
                expected_size,
                written,
            )
            raise SizeMismatchError(expected_size, written)
        checksum = calculate_file_checksum(staging)
        os.replace(staging, final_path)
    except OSError as exc:
        logger.exception('Storage failure merging %s', final_path)
        raise MergeFailedError(f'Cannot merge {file_name}') from exc
    finally:
        # Already gone after a successful publish
        _remove_quietly(staging)
    return checksum


def _concatenate(
    user_id: int,
    file_name: str,
    total_chunks: int,
    target: Path,
) -> int:
    buffer_size = get_buffer_size()
    written = 0
    with target.open('wb') as output:
        chunk_paths = chunk_store.iter_chunk_paths(user_id, file_name, total_chunks)
        for index, path in enumerate(chunk_paths):
            with path.open('rb') as chunk:
                for block in iter(lambda: chunk.read(buffer_size), b''):  # noqa: WPS426
                    output.write(block)
                    written += len(block)
            logger.debug(
                'Merged chunk %d/%d of %s (%d bytes written)',
                index + 1,
                total_chunks,
                file_name,
                written,
            )
    return written


def _save_record(  # noqa: WPS211
    user: _User,
    previous: File | None,
    file_name: str,
    final_path: Path,
    relative_path: str,
    size_bytes: int,
    checksum: str,
    thumbnail_url: str,
) -> File:
    if previous is None:
        record = File(
            user=user,
            name=file_name,
            storage_path=str(final_path),
            status=FileStatus.UPLOADING,
        )
        record.transition_to(FileStatus.ACTIVE)
    else:
        record = previous

    record.relative_path = relative_path
    record.size_bytes = size_bytes
    record.checksum_sha256 = checksum
    record.mime_type = detect_mime_type(file_name)
    record.file_type = classify_file_type(file_name)
    record.thumbnail_url = thumbnail_url
    record.save()
    return record


def _remove_thumbnail(thumbnail_url: str) -> None:
    thumb_path = thumb_path_from_url(thumbnail_url)
    if thumb_path is not None:
        _remove_quietly(thumb_path)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.exception('Failed to remove %s (orphaned)', path)
