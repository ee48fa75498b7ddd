"""Chunked upload, storage and thumbnail settings."""

from server.settings.components import BASE_DIR, config

# Physical roots for merged files and for in-flight chunks
FILES_UPLOAD_ROOT = config(
    'FILES_UPLOAD_ROOT',
    default=str(BASE_DIR.joinpath('media', 'upload')),
)
FILES_TEMP_ROOT = config(
    'FILES_TEMP_ROOT',
    default=str(BASE_DIR.joinpath('media', 'temp')),
)

# Base for thumbnail and avatar URLs: {base}/thumb/{user_id}/{name}
FILES_PUBLIC_BASE_URL = config(
    'FILES_PUBLIC_BASE_URL',
    default='http://127.0.0.1:8000',
)

# Copy buffer used while merging chunks (64 KiB)
FILES_MERGE_BUFFER_SIZE = config(
    'FILES_MERGE_BUFFER_SIZE',
    cast=int,
    default=64 * 1024,
)

# Thumbnails
FILES_THUMBNAIL_SIZE = (
    config('FILES_THUMBNAIL_WIDTH', cast=int, default=400),
    config('FILES_THUMBNAIL_HEIGHT', cast=int, default=400),
)
FILES_THUMBNAIL_PDF_DPI = config('FILES_THUMBNAIL_PDF_DPI', cast=int, default=150)
FILES_FFMPEG_BINARY = config('FILES_FFMPEG_BINARY', default='ffmpeg')
FILES_FFMPEG_TIMEOUT = config('FILES_FFMPEG_TIMEOUT', cast=int, default=60)

# Background worker pool
FILES_WORKER_MAX_WORKERS = config('FILES_WORKER_MAX_WORKERS', cast=int, default=10)
FILES_WORKER_QUEUE_SIZE = config('FILES_WORKER_QUEUE_SIZE', cast=int, default=100)
FILES_WORKER_BLOCK_TIMEOUT = config(
    'FILES_WORKER_BLOCK_TIMEOUT',
    cast=float,
    default=5.0,
)

# Chunk request deduplication
FILES_IDEMPOTENCY_TTL = config('FILES_IDEMPOTENCY_TTL', cast=int, default=600)
FILES_IDEMPOTENCY_MAX_ENTRIES = config(
    'FILES_IDEMPOTENCY_MAX_ENTRIES',
    cast=int,
    default=10000,
)

# Age after which leftover chunk blobs are purged by cleanup_chunks
FILES_STALE_CHUNK_HOURS = config('FILES_STALE_CHUNK_HOURS', cast=int, default=24)
