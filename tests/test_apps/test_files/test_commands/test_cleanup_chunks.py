"""Tests for cleanup_chunks management command."""

import os
import time
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from server.apps.files.infrastructure.chunk_store import chunk_path, put_chunk


def _age(path, hours):
    """Backdate a file's modification time."""
    stamp = time.time() - hours * 3600
    os.utime(path, (stamp, stamp))


@pytest.fixture
def chunks():
    """One abandoned and one fresh chunk of the same upload.

    Returns:
        Tuple of (old chunk path, new chunk path).
    """
    put_chunk(1, 'video.mp4', 0, 2, b'old')
    put_chunk(1, 'video.mp4', 1, 2, b'new')
    old_chunk = chunk_path(1, 'video.mp4', 0, 2)
    new_chunk = chunk_path(1, 'video.mp4', 1, 2)
    _age(old_chunk, 30)
    return old_chunk, new_chunk


class TestCleanupChunksCommand:
    """Tests for cleanup_chunks management command."""

    def test_cleanup_deletes_old_chunks(self, chunks):
        """Chunks older than the default age are purged."""
        old_chunk, new_chunk = chunks

        out = StringIO()
        call_command('cleanup_chunks', stdout=out)

        assert not old_chunk.exists()
        assert new_chunk.exists()
        assert 'Purged 1 chunks, 0 failed' in out.getvalue()

    def test_cleanup_dry_run_keeps_chunks(self, chunks):
        """Dry run only reports."""
        old_chunk, new_chunk = chunks

        out = StringIO()
        call_command('cleanup_chunks', '--dry-run', stdout=out)

        assert old_chunk.exists()
        assert new_chunk.exists()
        assert f'Would delete: {old_chunk}' in out.getvalue()
        assert 'Would purge 1 chunks' in out.getvalue()

    def test_cleanup_custom_age(self, chunks):
        """--hours overrides the configured age."""
        old_chunk, new_chunk = chunks
        _age(new_chunk, 2)

        out = StringIO()
        call_command('cleanup_chunks', '--hours', '1', stdout=out)

        assert not old_chunk.exists()
        assert not new_chunk.exists()
        assert 'Purged 2 chunks, 0 failed' in out.getvalue()

    def test_cleanup_age_from_settings(self, chunks, settings):
        """The default age comes from settings."""
        settings.FILES_STALE_CHUNK_HOURS = 48
        old_chunk, _ = chunks

        out = StringIO()
        call_command('cleanup_chunks', stdout=out)

        assert old_chunk.exists()
        assert 'Purged 0 chunks, 0 failed' in out.getvalue()

    def test_cleanup_ignores_other_files(self, chunks, media_roots):
        """Only chunk blobs are touched."""
        _, temp_root = media_roots
        stray = temp_root / '1' / 'notes.txt'
        stray.write_bytes(b'keep me')
        _age(stray, 30)

        call_command('cleanup_chunks', stdout=StringIO())

        assert stray.exists()

    def test_cleanup_without_temp_root(self):
        """A missing temp root means nothing to purge."""
        out = StringIO()
        call_command('cleanup_chunks', stdout=out)

        assert 'Purged 0 chunks, 0 failed' in out.getvalue()

    def test_cleanup_rejects_negative_age(self):
        """Negative ages are refused."""
        with pytest.raises(CommandError, match='negative'):
            call_command('cleanup_chunks', '--hours', '-1', stdout=StringIO())
