"""Tests for chunk blob storage."""

import io

import pytest

from server.apps.files.exceptions import (
    InvalidChunkCountError,
    InvalidChunkIndexError,
)
from server.apps.files.infrastructure import chunk_store


def test_chunk_file_name():
    """Chunk names carry index and total."""
    assert chunk_store.chunk_file_name('report.pdf', 2, 3) == 'report.pdf.2.3.part'


def test_put_chunk_writes_under_user_temp_dir(media_roots):
    """Chunks land in the owner's temp directory."""
    _, temp_root = media_roots

    path = chunk_store.put_chunk(1, 'report.pdf', 0, 3, b'abc')

    assert path == temp_root / '1' / 'report.pdf.0.3.part'
    assert path.read_bytes() == b'abc'
    assert chunk_store.chunk_exists(1, 'report.pdf', 0, 3)
    assert chunk_store.chunk_size(1, 'report.pdf', 0, 3) == 3


def test_put_chunk_accepts_file_objects(settings):
    """Streams are copied with the configured buffer."""
    settings.FILES_MERGE_BUFFER_SIZE = 4
    payload = b'0123456789' * 3

    path = chunk_store.put_chunk(1, 'data.bin', 0, 1, io.BytesIO(payload))

    assert path.read_bytes() == payload


def test_put_chunk_overwrites_previous_blob():
    """Re-uploading a chunk replaces its content."""
    chunk_store.put_chunk(1, 'report.pdf', 1, 3, b'old content')
    path = chunk_store.put_chunk(1, 'report.pdf', 1, 3, b'new')

    assert path.read_bytes() == b'new'


def test_put_chunk_leaves_no_staging_files():
    """Only the final blob remains after a write."""
    path = chunk_store.put_chunk(1, 'report.pdf', 0, 1, b'abc')

    assert [entry.name for entry in path.parent.iterdir()] == [path.name]


def test_put_chunk_cleans_staging_on_failure():
    """A failing stream leaves neither blob nor staging file."""
    class BrokenStream(io.RawIOBase):
        def readinto(self, buffer):
            raise OSError('connection reset')

    with pytest.raises(OSError, match='connection reset'):
        chunk_store.put_chunk(1, 'report.pdf', 0, 1, BrokenStream())

    directory = chunk_store.chunk_path(1, 'report.pdf', 0, 1).parent
    assert list(directory.iterdir()) == []


@pytest.mark.parametrize('total_chunks', [0, -1])
def test_put_chunk_rejects_invalid_total(media_roots, total_chunks):
    """Invalid totals fail before touching the disk."""
    _, temp_root = media_roots

    with pytest.raises(InvalidChunkCountError):
        chunk_store.put_chunk(1, 'report.pdf', 0, total_chunks, b'abc')

    assert not temp_root.exists()


@pytest.mark.parametrize('chunk_index', [-1, 3, 10])
def test_put_chunk_rejects_invalid_index(media_roots, chunk_index):
    """Indices outside the range fail before touching the disk."""
    _, temp_root = media_roots

    with pytest.raises(InvalidChunkIndexError) as exc_info:
        chunk_store.put_chunk(1, 'report.pdf', chunk_index, 3, b'abc')

    assert isinstance(exc_info.value, ValueError)
    assert exc_info.value.chunk_index == chunk_index
    assert not temp_root.exists()


def test_first_missing_index_reports_gap():
    """The lowest absent index is reported."""
    chunk_store.put_chunk(1, 'report.pdf', 0, 3, b'a')
    chunk_store.put_chunk(1, 'report.pdf', 1, 3, b'b')

    assert chunk_store.first_missing_index(1, 'report.pdf', 3) == 2
    assert not chunk_store.all_chunks_present(1, 'report.pdf', 3)


def test_first_missing_index_treats_empty_as_missing():
    """Empty blobs do not count as uploaded."""
    chunk_store.put_chunk(1, 'report.pdf', 0, 2, b'')
    chunk_store.put_chunk(1, 'report.pdf', 1, 2, b'b')

    assert chunk_store.first_missing_index(1, 'report.pdf', 2) == 0


def test_all_chunks_present():
    """Complete uploads have no missing index."""
    for index in range(3):
        chunk_store.put_chunk(1, 'report.pdf', index, 3, b'x')

    assert chunk_store.first_missing_index(1, 'report.pdf', 3) is None
    assert chunk_store.all_chunks_present(1, 'report.pdf', 3)


def test_chunks_are_scoped_by_total_and_user():
    """Sessions differ by owner and chunk count."""
    chunk_store.put_chunk(1, 'report.pdf', 0, 1, b'a')

    assert not chunk_store.all_chunks_present(2, 'report.pdf', 1)
    assert chunk_store.first_missing_index(1, 'report.pdf', 2) == 0


def test_list_present_indices():
    """Stored non-empty chunks are listed in order."""
    chunk_store.put_chunk(1, 'report.pdf', 2, 4, b'c')
    chunk_store.put_chunk(1, 'report.pdf', 0, 4, b'a')
    chunk_store.put_chunk(1, 'report.pdf', 3, 4, b'')

    assert chunk_store.list_present_indices(1, 'report.pdf', 4) == [0, 2]


def test_delete_chunks_removes_all_blobs():
    """Cleanup removes present blobs and skips missing ones."""
    chunk_store.put_chunk(1, 'report.pdf', 0, 3, b'a')
    chunk_store.put_chunk(1, 'report.pdf', 2, 3, b'c')

    removed = chunk_store.delete_chunks(1, 'report.pdf', 3)

    assert removed == 2
    assert chunk_store.list_present_indices(1, 'report.pdf', 3) == []
