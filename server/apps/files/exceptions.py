"""Exceptions for files app."""


class QuotaExceededError(Exception):
    """Raised when upload would exceed user's storage quota."""

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = quota_bytes - used_bytes
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )


class FileOperationError(Exception):
    """Base class for upload, merge and catalog failures."""


class InvalidChunkCountError(FileOperationError, ValueError):
    """Raised when the total chunk count is not a positive integer."""

    def __init__(self, total_chunks: int) -> None:
        """Initialize InvalidChunkCountError.

        Args:
            total_chunks: The rejected chunk count.
        """
        self.total_chunks = total_chunks
        super().__init__(
            f'Total chunk count must be greater than 0, got {total_chunks}',
        )


class InvalidChunkIndexError(FileOperationError, ValueError):
    """Raised when a chunk index falls outside ``[0, total_chunks)``."""

    def __init__(self, chunk_index: int, total_chunks: int) -> None:
        """Initialize InvalidChunkIndexError.

        Args:
            chunk_index: The rejected chunk index.
            total_chunks: Total chunk count of the upload.
        """
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        super().__init__(
            f'Invalid chunk index {chunk_index} '
            f'for upload of {total_chunks} chunks',
        )


class IncompleteUploadError(FileOperationError):
    """Raised when a merge is requested before every chunk arrived.

    Retryable: the client should resend the missing chunk.
    """

    def __init__(self, file_name: str, missing_index: int) -> None:
        """Initialize IncompleteUploadError.

        Args:
            file_name: Name of the file being merged.
            missing_index: First chunk index that is absent or empty.
        """
        self.file_name = file_name
        self.missing_index = missing_index
        super().__init__(
            f'Upload of {file_name} is incomplete: '
            f'chunk {missing_index} is missing',
        )


class SizeMismatchError(FileOperationError):
    """Raised when merged bytes differ from the declared file size."""

    def __init__(self, expected: int, actual: int) -> None:
        """Initialize SizeMismatchError.

        Args:
            expected: Size declared by the caller.
            actual: Bytes actually written by the merge.
        """
        self.expected = expected
        self.actual = actual
        super().__init__(
            f'Merged size mismatch: expected {expected} bytes, got {actual}',
        )


class MergeInProgressError(FileOperationError):
    """Raised when another merge of the same file is already running."""

    def __init__(self, user_id: int, file_name: str) -> None:
        """Initialize MergeInProgressError.

        Args:
            user_id: Owner of the upload.
            file_name: Name of the file being merged.
        """
        self.user_id = user_id
        self.file_name = file_name
        super().__init__(
            f'Merge of {file_name} for user {user_id} is already in progress',
        )


class MergeFailedError(FileOperationError):
    """Raised when storage I/O aborts a merge."""


class ThumbnailGenerationError(FileOperationError):
    """Raised by the thumbnail pipeline when a preview cannot be built."""


class InvalidStatusTransitionError(FileOperationError):
    """Raised when a file record is moved to a forbidden status."""

    def __init__(self, current: str, target: str) -> None:
        """Initialize InvalidStatusTransitionError.

        Args:
            current: Current status value.
            target: Requested status value.
        """
        self.current = current
        self.target = target
        super().__init__(f'Cannot change file status from {current} to {target}')


class FileAlreadyExistsError(FileOperationError):
    """Raised when a name is already taken inside a folder."""


class WorkerPoolSaturatedError(FileOperationError):
    """Raised when the background pool queue is full."""
