"""Database models for files app."""

from pathlib import Path
from typing import Final, final

from typing_extensions import override

from django.contrib.auth import get_user_model
from django.db import models

from server.apps.files.exceptions import InvalidStatusTransitionError

User = get_user_model()

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_PATH_MAX_LENGTH: Final = 1024
_MIME_TYPE_MAX_LENGTH: Final = 255
_CHECKSUM_MAX_LENGTH: Final = 64  # SHA256 hex length
_CHOICE_MAX_LENGTH: Final = 20

ROOT_PATH: Final = '/'


class FileStatus(models.TextChoices):
    """Lifecycle status of a file record."""

    ACTIVE = 'ACTIVE', 'Active'
    DELETED = 'DELETED', 'Deleted'
    ARCHIVED = 'ARCHIVED', 'Archived'
    UPLOADING = 'UPLOADING', 'Uploading'


class FileType(models.TextChoices):
    """Coarse type classification derived from the file extension."""

    FOLDER = 'folder', 'Folder'
    IMAGE = 'image', 'Image'
    DOCUMENT = 'document', 'Document'
    VIDEO = 'video', 'Video'
    AUDIO = 'audio', 'Audio'
    ARCHIVE = 'archive', 'Archive'
    CODE = 'code', 'Code'
    EXECUTABLE = 'executable', 'Executable'
    OTHER = 'other', 'Other'


# ARCHIVED is reachable from ACTIVE but no operation drives it yet.
# DELETED is terminal: trashed records are never reactivated.
_ALLOWED_TRANSITIONS: Final = {
    FileStatus.UPLOADING: frozenset({FileStatus.ACTIVE}),
    FileStatus.ACTIVE: frozenset({FileStatus.DELETED, FileStatus.ARCHIVED}),
    FileStatus.ARCHIVED: frozenset(),
    FileStatus.DELETED: frozenset(),
}


@final
class File(models.Model):
    """Catalog record for one logical file or folder.

    The physical bytes live at ``storage_path`` on local disk
    (``{upload_root}/{user_id}/{name}``). ``relative_path`` is the
    folder the record is shown in, inside the user's own tree.

    ``checksum_sha256`` and ``size_bytes`` are only meaningful once the
    record has left ``UPLOADING``.
    """

    # Owner relationship
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='files',
        db_index=True,
    )

    name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        help_text='Display name shown to the owner',
    )

    storage_path = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        help_text='Physical path on disk',
    )

    relative_path = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        default=ROOT_PATH,
        help_text="Folder in the owner's tree, e.g. '/' or '/docs'",
    )

    thumbnail_url = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Public URL of the derived preview, empty if none',
    )

    # File metadata
    size_bytes = models.BigIntegerField(
        default=0,
        help_text='File size in bytes',
    )

    mime_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        blank=True,
        default='',
    )

    checksum_sha256 = models.CharField(
        max_length=_CHECKSUM_MAX_LENGTH,
        blank=True,
        default='',
        help_text='SHA256 hash for integrity verification',
        db_index=True,
    )

    file_type = models.CharField(
        max_length=_CHOICE_MAX_LENGTH,
        choices=FileType.choices,
        default=FileType.OTHER,
    )

    status = models.CharField(
        max_length=_CHOICE_MAX_LENGTH,
        choices=FileStatus.choices,
        default=FileStatus.ACTIVE,
        db_index=True,
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering = ['-created_at']

        indexes = [
            # Optimize folder listing queries
            models.Index(
                fields=['user', 'relative_path'],
                name='files_user_folder_idx',
            ),
            # Optimize trash and status filtered queries
            models.Index(
                fields=['user', 'status'],
                name='files_user_status_idx',
            ),
        ]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(size_bytes__gte=0),
                name='files_size_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}:{self.relative_path}:{self.name}'

    def get_extension(self) -> str:
        """Extract file extension.

        Example: 'report.PDF' -> 'pdf'

        Returns:
            Extension without dot (lowercase).
        """
        extension = Path(self.name).suffix
        return extension.lstrip('.').lower()

    def is_folder(self) -> bool:
        """Check whether the record is a folder."""
        return self.file_type == FileType.FOLDER

    def can_transition_to(self, target: str) -> bool:
        """Check whether ``target`` is a legal next status.

        Args:
            target: Requested status value.

        Returns:
            True if the transition is allowed.
        """
        allowed = _ALLOWED_TRANSITIONS.get(FileStatus(self.status), frozenset())
        return target in allowed

    def transition_to(self, target: str) -> None:
        """Move the record to ``target`` status (not saved).

        Args:
            target: Requested status value.

        Raises:
            InvalidStatusTransitionError: If the move is not allowed.
        """
        if not self.can_transition_to(target):
            raise InvalidStatusTransitionError(self.status, target)
        self.status = target


# Default quota: 10 GB in bytes
_DEFAULT_QUOTA_BYTES: Final = 10 * 1024 * 1024 * 1024


@final
class UserQuota(models.Model):
    """Storage quota for a user.

    Tracks user's storage limit and current usage. Usage includes
    soft-deleted files, whose bytes are kept on disk.

    ``used_bytes`` only grows through a successful merge, which checks
    the limit before writing and again when committing.
    """

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='quota',
        primary_key=True,
    )

    quota_bytes = models.BigIntegerField(
        default=_DEFAULT_QUOTA_BYTES,
        help_text='Storage quota limit in bytes',
    )

    used_bytes = models.BigIntegerField(
        default=0,
        help_text='Currently used storage in bytes',
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'User Quota'  # type: ignore[mutable-override]
        verbose_name_plural = 'User Quotas'  # type: ignore[mutable-override]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(quota_bytes__gte=0),
                name='quota_bytes_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(used_bytes__gte=0),
                name='used_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}: {self.used_bytes}/{self.quota_bytes}'

    def has_space_for(self, size_bytes: int) -> bool:
        """Check if there's enough space for the given size.

        Args:
            size_bytes: Size to check in bytes.

        Returns:
            True if there's enough space, False otherwise.
        """
        return self.used_bytes + size_bytes <= self.quota_bytes

    def available_bytes(self) -> int:
        """Get available storage space.

        Returns:
            Available bytes (never negative).
        """
        available = self.quota_bytes - self.used_bytes
        return max(0, available)
