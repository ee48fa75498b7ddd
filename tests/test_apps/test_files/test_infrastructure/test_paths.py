"""Tests for the per-user directory layout."""

import threading

import pytest

from server.apps.files.infrastructure import paths


def test_user_directories(media_roots):
    """Each purpose has its own directory under the roots."""
    upload_root, temp_root = media_roots

    assert paths.user_upload_dir(7) == upload_root / '7'
    assert paths.user_temp_dir(7) == temp_root / '7'
    assert paths.user_thumb_dir(7) == upload_root / 'thumb' / '7'
    assert paths.user_avatar_dir(7) == upload_root / 'avatar' / '7'


def test_allocate_storage_path_is_unique(media_roots):
    """Every stored file gets its own name inside the user directory."""
    upload_root, _ = media_roots

    first = paths.allocate_storage_path(7, 'a.txt')
    second = paths.allocate_storage_path(7, 'a.txt')

    assert first != second
    assert first.parent == upload_root / '7'
    assert first.name.endswith('_a.txt')


def test_public_urls(settings):
    """URLs join the base, purpose, owner and file name."""
    settings.FILES_PUBLIC_BASE_URL = 'https://cdn.example.com/'

    assert paths.build_thumb_url(3, 'thumb_x.jpg') == (
        'https://cdn.example.com/thumb/3/thumb_x.jpg'
    )
    assert paths.build_avatar_url(3, 'avatar_3x.png') == (
        'https://cdn.example.com/avatar/3/avatar_3x.png'
    )


def test_ensure_directory_creates_parents(tmp_path):
    """Missing parents are created and existing ones are fine."""
    target = tmp_path / 'a' / 'b' / 'c'

    assert paths.ensure_directory(target) == target
    assert target.is_dir()
    assert paths.ensure_directory(target) == target


def test_ensure_directory_concurrent_callers(tmp_path):
    """Racing first uploads all see the directory created once."""
    target = tmp_path / 'shared'
    errors = []

    def create():
        try:
            paths.ensure_directory(target)
        except OSError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=create) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors
    assert target.is_dir()


def test_thumb_path_from_url_round_trip(media_roots):
    """A thumbnail URL maps back to its file."""
    upload_root, _ = media_roots
    url = paths.build_thumb_url(5, 'thumb_abc.jpg')

    assert paths.thumb_path_from_url(url) == upload_root / 'thumb' / '5' / 'thumb_abc.jpg'


@pytest.mark.parametrize('url', [
    '',
    'http://elsewhere.test/thumb/5/thumb_abc.jpg',
    'http://files.test/thumb/5/',
    'http://files.test/thumb/5/../../etc/passwd',
])
def test_thumb_path_from_url_rejects_foreign(url):
    """Foreign or malformed URLs map to nothing."""
    assert paths.thumb_path_from_url(url) is None
