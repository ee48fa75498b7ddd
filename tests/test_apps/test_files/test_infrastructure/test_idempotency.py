"""Tests for the request idempotency cache."""

import pytest

from server.apps.files.infrastructure.idempotency import IdempotencyCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_first_request_is_new_repeat_is_seen():
    """A key is new once, then known."""
    cache = IdempotencyCache(ttl_seconds=10, max_entries=5)

    assert cache.check_and_record('req-1') is False
    assert cache.check_and_record('req-1') is True
    assert 'req-1' in cache


def test_entries_expire_after_ttl():
    """Keys are forgotten once the window has passed."""
    clock = FakeClock()
    cache = IdempotencyCache(ttl_seconds=10, max_entries=5, clock=clock)
    cache.check_and_record('req-1')

    clock.now = 9.5
    assert 'req-1' in cache

    clock.now = 10.0
    assert 'req-1' not in cache
    assert cache.check_and_record('req-1') is False


def test_oldest_entry_evicted_when_full():
    """Size stays bounded by evicting the oldest key."""
    clock = FakeClock()
    cache = IdempotencyCache(ttl_seconds=100, max_entries=2, clock=clock)

    cache.check_and_record('a')
    clock.now = 1
    cache.check_and_record('b')
    clock.now = 2
    cache.check_and_record('c')

    assert len(cache) == 2
    assert 'a' not in cache
    assert 'b' in cache
    assert 'c' in cache


def test_discard_allows_retry():
    """A discarded key is handled again."""
    cache = IdempotencyCache(ttl_seconds=10, max_entries=5)
    cache.check_and_record('req-1')

    cache.discard('req-1')

    assert cache.check_and_record('req-1') is False


@pytest.mark.parametrize(('ttl', 'max_entries'), [(0, 5), (10, 0), (-1, 5)])
def test_invalid_bounds_rejected(ttl, max_entries):
    """Both bounds must be positive."""
    with pytest.raises(ValueError, match='must be positive'):
        IdempotencyCache(ttl_seconds=ttl, max_entries=max_entries)
