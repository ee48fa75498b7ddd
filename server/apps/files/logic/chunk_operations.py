"""Business logic for receiving upload chunks."""

import logging
import threading
from concurrent.futures import Future
from typing import Any, BinaryIO

from django.conf import settings

from server.apps.files.infrastructure import chunk_store, workers
from server.apps.files.infrastructure.idempotency import IdempotencyCache
from server.apps.files.infrastructure.metadata import validate_file_name

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_request_cache: IdempotencyCache | None = None


def get_request_cache() -> IdempotencyCache:
    """Get the process-wide cache of handled chunk request ids."""
    global _request_cache  # noqa: WPS420
    with _cache_lock:
        if _request_cache is None:
            _request_cache = IdempotencyCache(
                ttl_seconds=getattr(settings, 'FILES_IDEMPOTENCY_TTL', 600),
                max_entries=getattr(
                    settings,
                    'FILES_IDEMPOTENCY_MAX_ENTRIES',
                    10000,
                ),
            )
        return _request_cache


def reset_request_cache() -> None:
    """Forget every handled request id."""
    global _request_cache  # noqa: WPS420
    with _cache_lock:
        _request_cache = None


def upload_chunk(  # noqa: WPS211
    user: _User,
    file_name: str,
    chunk_index: int,
    total_chunks: int,
    content: bytes | BinaryIO,
    request_id: str | None = None,
) -> bool:
    """Store one chunk of an upload.

    Re-uploading a chunk replaces the earlier blob. When ``request_id``
    is given, a repeat of an already handled request is acknowledged
    without writing again.

    Args:
        user: Owner of the upload.
        file_name: Name of the file being uploaded.
        chunk_index: Zero-based chunk position.
        total_chunks: Number of chunks in the upload.
        content: Chunk payload.
        request_id: Optional client request id for deduplication.

    Returns:
        True if the chunk was written, False for a duplicate request.

    Raises:
        InvalidChunkCountError: If ``total_chunks`` is not positive.
        InvalidChunkIndexError: If ``chunk_index`` is out of range.
        ValidationError: If ``file_name`` is not a valid name.
        OSError: If the chunk cannot be written.
    """
    chunk_store.validate_chunk_params(chunk_index, total_chunks)

    cache_key = None
    if request_id:
        cache_key = (user.id, request_id)
        if get_request_cache().check_and_record(cache_key):
            logger.info(
                'Duplicate chunk request %s for %s, skipping',
                request_id,
                file_name,
            )
            return False

    try:
        chunk_store.put_chunk(
            user.id,
            file_name,
            chunk_index,
            total_chunks,
            content,
        )
    except Exception:
        if cache_key is not None:
            # Let the client retry the same request
            get_request_cache().discard(cache_key)
        logger.exception(
            'Failed to store chunk %d of %s for user %s',
            chunk_index,
            file_name,
            user.id,
        )
        raise

    return True


def submit_chunk_upload(  # noqa: WPS211
    user: _User,
    file_name: str,
    chunk_index: int,
    total_chunks: int,
    content: bytes | BinaryIO,
    request_id: str | None = None,
) -> Future[bool]:
    """Store a chunk on the background pool.

    Coordinates are validated before submitting, so caller errors are
    raised here rather than through the future.

    Args:
        user: Owner of the upload.
        file_name: Name of the file being uploaded.
        chunk_index: Zero-based chunk position.
        total_chunks: Number of chunks in the upload.
        content: Chunk payload. File objects must stay open until the
            future completes.
        request_id: Optional client request id for deduplication.

    Returns:
        Future resolving to the result of ``upload_chunk``.

    Raises:
        InvalidChunkCountError: If ``total_chunks`` is not positive.
        InvalidChunkIndexError: If ``chunk_index`` is out of range.
        WorkerPoolSaturatedError: If the pool has no free slot.
    """
    chunk_store.validate_chunk_params(chunk_index, total_chunks)
    return workers.get_executor().submit(
        upload_chunk,
        user,
        file_name,
        chunk_index,
        total_chunks,
        content,
        request_id,
    )


def get_uploaded_chunks(
    user: _User,
    file_name: str,
    total_chunks: int,
) -> list[int]:
    """List chunk indices already stored for an upload.

    Lets a client resume an interrupted upload by sending only the
    missing chunks.

    Args:
        user: Owner of the upload.
        file_name: Name of the file being uploaded.
        total_chunks: Number of chunks in the upload.

    Returns:
        Ascending list of stored chunk indices.

    Raises:
        ValidationError: If the file name is invalid.
        InvalidChunkCountError: If ``total_chunks`` is not positive.
    """
    file_name = validate_file_name(file_name)
    return chunk_store.list_present_indices(user.id, file_name, total_chunks)
