"""Infrastructure layer for files app.

This package contains integrations with the filesystem and other
external systems:
- Per-user directory layout and public URLs
- Chunk blob storage on local disk
- Metadata extraction (type classification, MIME type, checksum)
- Preview renderers (Pillow, ffmpeg, pdfium)
- Keyed locks, idempotency cache and the bounded worker pool

Keep infrastructure concerns separate from business logic.
"""
