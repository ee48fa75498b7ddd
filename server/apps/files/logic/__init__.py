"""Business logic layer for files app.

This package contains all business logic for the upload engine:
- Chunk upload and upload progress
- Merge of a complete chunk set into one durable file
- Quota admission and usage accounting
- Thumbnail derivation for merged files
- Catalog operations (folders, rename, move, soft delete, listing)

All business logic should be implemented here, separate from
models (data layer) and infrastructure (filesystem, rendering,
concurrency primitives).
"""
