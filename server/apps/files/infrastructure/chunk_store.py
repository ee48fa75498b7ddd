"""Chunk blobs of in-flight uploads.

A chunk lives at ``{temp_root}/{user_id}/{file_name}.{index}.{total}.part``.
An upload is complete when every index in ``[0, total)`` has a
non-empty blob. Writes land in a hidden sibling first and are renamed
into place, so a reader never sees a partially written chunk.
"""

import logging
import os
import shutil
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from server.apps.files.exceptions import (
    InvalidChunkCountError,
    InvalidChunkIndexError,
)
from server.apps.files.infrastructure.metadata import (
    get_buffer_size,
    validate_file_name,
)
from server.apps.files.infrastructure.paths import (
    ensure_directory,
    user_temp_dir,
)

logger = logging.getLogger(__name__)

CHUNK_SUFFIX = '.part'


def chunk_file_name(file_name: str, chunk_index: int, total_chunks: int) -> str:
    """Blob name of one chunk.

    Example: ('report.pdf', 0, 3) -> 'report.pdf.0.3.part'
    """
    return f'{file_name}.{chunk_index}.{total_chunks}{CHUNK_SUFFIX}'


def validate_chunk_params(chunk_index: int, total_chunks: int) -> None:
    """Validate chunk coordinates.

    Args:
        chunk_index: Zero-based chunk position.
        total_chunks: Number of chunks in the upload.

    Raises:
        InvalidChunkCountError: If ``total_chunks`` is not positive.
        InvalidChunkIndexError: If ``chunk_index`` is outside
            ``[0, total_chunks)``.
    """
    if total_chunks <= 0:
        raise InvalidChunkCountError(total_chunks)
    if not 0 <= chunk_index < total_chunks:
        raise InvalidChunkIndexError(chunk_index, total_chunks)


def chunk_path(
    user_id: int,
    file_name: str,
    chunk_index: int,
    total_chunks: int,
) -> Path:
    """Physical location of one chunk."""
    return user_temp_dir(user_id) / chunk_file_name(
        file_name,
        chunk_index,
        total_chunks,
    )


def put_chunk(
    user_id: int,
    file_name: str,
    chunk_index: int,
    total_chunks: int,
    content: bytes | BinaryIO,
) -> Path:
    """Store a chunk, replacing any earlier blob with the same key.

    Args:
        user_id: Owner id.
        file_name: Name of the file being uploaded.
        chunk_index: Zero-based chunk position.
        total_chunks: Number of chunks in the upload.
        content: Chunk payload, raw bytes or a binary file object.

    Returns:
        Path of the stored chunk.

    Raises:
        InvalidChunkCountError: If ``total_chunks`` is not positive.
        InvalidChunkIndexError: If ``chunk_index`` is out of range.
        ValidationError: If ``file_name`` is not a valid name.
        OSError: If the chunk cannot be written.
    """
    validate_chunk_params(chunk_index, total_chunks)
    file_name = validate_file_name(file_name)

    directory = ensure_directory(user_temp_dir(user_id))
    target = directory / chunk_file_name(file_name, chunk_index, total_chunks)
    staging = directory / f'.{target.name}.{uuid.uuid4().hex}.tmp'

    try:
        with staging.open('wb') as output:
            if isinstance(content, (bytes, bytearray, memoryview)):
                output.write(content)
            else:
                shutil.copyfileobj(content, output, get_buffer_size())
        os.replace(staging, target)
    except BaseException:
        staging.unlink(missing_ok=True)
        raise

    logger.debug(
        'Stored chunk %d/%d of %s for user %s',
        chunk_index + 1,
        total_chunks,
        file_name,
        user_id,
    )
    return target


def chunk_exists(
    user_id: int,
    file_name: str,
    chunk_index: int,
    total_chunks: int,
) -> bool:
    """Check whether a chunk blob is stored."""
    return chunk_path(user_id, file_name, chunk_index, total_chunks).is_file()


def chunk_size(
    user_id: int,
    file_name: str,
    chunk_index: int,
    total_chunks: int,
) -> int:
    """Size of a stored chunk in bytes, 0 if it is absent."""
    path = chunk_path(user_id, file_name, chunk_index, total_chunks)
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return 0


def first_missing_index(
    user_id: int,
    file_name: str,
    total_chunks: int,
) -> int | None:
    """Find the first chunk that is absent or empty.

    Args:
        user_id: Owner id.
        file_name: Name of the file being uploaded.
        total_chunks: Number of chunks in the upload.

    Returns:
        Lowest missing index, or None when the upload is complete.

    Raises:
        InvalidChunkCountError: If ``total_chunks`` is not positive.
    """
    if total_chunks <= 0:
        raise InvalidChunkCountError(total_chunks)
    for index in range(total_chunks):
        if chunk_size(user_id, file_name, index, total_chunks) == 0:
            return index
    return None


def all_chunks_present(user_id: int, file_name: str, total_chunks: int) -> bool:
    """Check whether every chunk of the upload is stored and non-empty."""
    return first_missing_index(user_id, file_name, total_chunks) is None


def list_present_indices(
    user_id: int,
    file_name: str,
    total_chunks: int,
) -> list[int]:
    """Indices of the non-empty chunks already stored, ascending."""
    if total_chunks <= 0:
        raise InvalidChunkCountError(total_chunks)
    return [
        index
        for index in range(total_chunks)
        if chunk_size(user_id, file_name, index, total_chunks) > 0
    ]


def iter_chunk_paths(
    user_id: int,
    file_name: str,
    total_chunks: int,
) -> Iterator[Path]:
    """Yield chunk paths in merge order."""
    for index in range(total_chunks):
        yield chunk_path(user_id, file_name, index, total_chunks)


def delete_chunks(user_id: int, file_name: str, total_chunks: int) -> int:
    """Remove every chunk blob of an upload.

    Missing blobs are skipped. Errors on individual blobs are logged and
    the remaining blobs are still removed.

    Args:
        user_id: Owner id.
        file_name: Name of the uploaded file.
        total_chunks: Number of chunks in the upload.

    Returns:
        Number of blobs removed.
    """
    removed = 0
    for path in iter_chunk_paths(user_id, file_name, total_chunks):
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError:
            logger.exception('Failed to delete chunk: %s', path)
            continue
        removed += 1

    logger.info(
        'Deleted %d chunks of %s for user %s',
        removed,
        file_name,
        user_id,
    )
    return removed
