"""Shared fixtures for files app tests."""

import logging

import pytest
from django.contrib.auth import get_user_model

from server.apps.files.infrastructure import workers
from server.apps.files.infrastructure.chunk_store import put_chunk
from server.apps.files.logic import chunk_operations

User = get_user_model()


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture(autouse=True)
def media_roots(settings, tmp_path):
    """Point upload and temp roots at a per-test directory.

    Returns:
        Tuple of (upload_root, temp_root).
    """
    upload_root = tmp_path / 'upload'
    temp_root = tmp_path / 'temp'
    settings.FILES_UPLOAD_ROOT = upload_root
    settings.FILES_TEMP_ROOT = temp_root
    settings.FILES_PUBLIC_BASE_URL = 'http://files.test'
    return upload_root, temp_root


@pytest.fixture(autouse=True)
def propagate_server_logs(monkeypatch):
    """Let caplog see project loggers, which log to console only."""
    monkeypatch.setattr(logging.getLogger('server'), 'propagate', True)


@pytest.fixture(autouse=True)
def fresh_request_cache():
    """Start every test with an empty idempotency cache."""
    chunk_operations.reset_request_cache()
    yield
    chunk_operations.reset_request_cache()


@pytest.fixture
def inline_background(monkeypatch):
    """Run fire-and-forget tasks synchronously.

    Returns:
        List of task descriptions that ran.
    """
    ran = []

    def run_inline(description, fn, *args, **kwargs):
        ran.append(description)
        fn(*args, **kwargs)

    monkeypatch.setattr(workers, 'run_in_background', run_inline)
    return ran


@pytest.fixture
def upload_chunks(user):
    """Store chunks for ``user`` directly in the chunk store.

    Returns:
        Callable taking (file_name, list of payloads, indices=None).
    """
    def store(file_name, payloads, indices=None):
        total = len(payloads)
        for index in indices if indices is not None else range(total):
            put_chunk(user.id, file_name, index, total, payloads[index])

    return store
