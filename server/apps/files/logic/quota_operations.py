"""Business logic for storage quota operations."""

import logging
from typing import Any

from django.db import transaction
from django.db.models import Sum  # noqa: WPS347

from server.apps.files.exceptions import QuotaExceededError
from server.apps.files.models import File, FileType, UserQuota

# User type for Django's dynamic user model
_User = Any

# Field name constant to avoid string literal over-use
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226

logger = logging.getLogger(__name__)


def get_or_create_quota(user: _User) -> UserQuota:
    """Get or create quota for user (on-demand creation).

    Args:
        user: User to get quota for.

    Returns:
        UserQuota instance for the user.
    """
    quota, created = UserQuota.objects.get_or_create(user=user)
    if created:
        logger.info(
            'Created quota for user %s: %d bytes',
            user.username,
            quota.quota_bytes,
        )
    return quota


def _raise_exceeded(user: _User, quota: UserQuota, size_bytes: int) -> None:
    logger.warning(
        'Quota exceeded for user %s: need %d, have %d available',
        user.username,
        size_bytes,
        quota.available_bytes(),
    )
    raise QuotaExceededError(
        quota_bytes=quota.quota_bytes,
        used_bytes=quota.used_bytes,
        required_bytes=size_bytes,
    )


def check_quota(user: _User, size_bytes: int) -> None:
    """Check if user has enough quota for an upload.

    Creates quota on-demand if it doesn't exist. The check is advisory:
    ``increment_usage`` repeats it under a row lock when committing.

    Args:
        user: User to check quota for.
        size_bytes: Final size of the upload in bytes.

    Raises:
        QuotaExceededError: If upload would exceed quota.
    """
    quota = get_or_create_quota(user)

    if not quota.has_space_for(size_bytes):
        _raise_exceeded(user, quota, size_bytes)


def increment_usage(user: _User, size_bytes: int) -> None:
    """Atomically increment user's storage usage.

    Locks the quota row and re-checks the limit, so two commits racing
    past ``check_quota`` cannot push usage over the quota together.

    Args:
        user: User to increment usage for.
        size_bytes: Bytes to add to usage.

    Raises:
        QuotaExceededError: If the increment would exceed quota.
    """
    get_or_create_quota(user)

    with transaction.atomic():
        quota = UserQuota.objects.select_for_update().get(user=user)
        if not quota.has_space_for(size_bytes):
            _raise_exceeded(user, quota, size_bytes)
        quota.used_bytes += size_bytes
        quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.debug(
        'Incremented usage for user %s by %d bytes (new: %d)',
        user.username,
        size_bytes,
        quota.used_bytes,
    )


def decrement_usage(user: _User, size_bytes: int) -> None:
    """Atomically decrement user's storage usage.

    Prevents negative values by clamping to 0.

    Args:
        user: User to decrement usage for.
        size_bytes: Bytes to subtract from usage.
    """
    with transaction.atomic():
        try:
            quota = UserQuota.objects.select_for_update().get(user=user)
        except UserQuota.DoesNotExist:
            logger.debug(
                'No quota exists for user %s, skipping decrement',
                user.username,
            )
            return

        new_usage = max(0, quota.used_bytes - size_bytes)
        quota.used_bytes = new_usage
        quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.debug(
        'Decremented usage for user %s by %d bytes (new: %d)',
        user.username,
        size_bytes,
        new_usage,
    )


def adjust_usage(user: _User, old_size: int, new_size: int) -> None:
    """Adjust user's storage usage when a file is replaced.

    Args:
        user: User to adjust usage for.
        old_size: Previous file size in bytes.
        new_size: New file size in bytes.

    Raises:
        QuotaExceededError: If the growth would exceed quota.
    """
    size_diff = new_size - old_size

    if size_diff > 0:
        increment_usage(user, size_diff)
    elif size_diff < 0:
        decrement_usage(user, -size_diff)


def recalculate_usage(user: _User) -> int:
    """Recalculate user's storage usage from file records.

    Useful for fixing inconsistencies. Soft-deleted files still count
    since their bytes stay on disk. Folders carry no bytes.

    Args:
        user: User to recalculate usage for.

    Returns:
        New calculated usage in bytes.
    """
    total = File.objects.filter(user=user).exclude(
        file_type=FileType.FOLDER,
    ).aggregate(
        total=Sum('size_bytes'),
    )['total'] or 0

    with transaction.atomic():
        quota = get_or_create_quota(user)
        old_usage = quota.used_bytes
        quota.used_bytes = total
        quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.info(
        'Recalculated usage for user %s: %d -> %d bytes',
        user.username,
        old_usage,
        total,
    )

    return total
