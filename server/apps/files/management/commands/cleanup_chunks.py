"""Management command to purge abandoned upload chunks."""

import logging
import time
from pathlib import Path
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from server.apps.files.infrastructure.chunk_store import CHUNK_SUFFIX
from server.apps.files.infrastructure.paths import get_temp_root

_DEFAULT_HOURS: Final = 24
_SECONDS_PER_HOUR: Final = 3600

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete chunk blobs of uploads that were never merged."""

    help = 'Delete upload chunks older than the given number of hours'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--hours',
            type=float,
            default=None,
            help='Minimum chunk age in hours (default: FILES_STALE_CHUNK_HOURS)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If ``--hours`` is negative.
        """
        dry_run = options['dry_run']
        hours = options['hours']
        if hours is None:
            hours = getattr(settings, 'FILES_STALE_CHUNK_HOURS', _DEFAULT_HOURS)
        if hours < 0:
            raise CommandError('--hours cannot be negative')

        temp_root = get_temp_root()
        cutoff = time.time() - hours * _SECONDS_PER_HOUR

        self.stdout.write(
            f'Looking for chunks in {temp_root} older than {hours} hours',
        )

        count = 0
        failed = 0
        for chunk in self._stale_chunks(temp_root, cutoff):
            if dry_run:
                self.stdout.write(f'Would delete: {chunk}')
                count += 1
                continue

            try:
                chunk.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                self.stderr.write(f'Failed to delete {chunk}: {exc}')
                logger.exception('Failed to purge chunk: %s', chunk)
                failed += 1
                continue
            count += 1
            logger.info('Purged stale chunk: %s', chunk)

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would purge {count} chunks'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f'Purged {count} chunks, {failed} failed'),
            )

    def _stale_chunks(self, temp_root: Path, cutoff: float) -> list[Path]:
        if not temp_root.is_dir():
            return []
        stale = []
        for chunk in sorted(temp_root.glob(f'*/*{CHUNK_SUFFIX}')):
            try:
                modified = chunk.stat().st_mtime
            except FileNotFoundError:
                continue
            if modified <= cutoff:
                stale.append(chunk)
        return stale
