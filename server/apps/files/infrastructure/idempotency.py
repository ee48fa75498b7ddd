"""Bounded, time-windowed memory of request ids already handled."""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import final


@final
class IdempotencyCache:
    """Thread-safe set of recently seen keys with expiry.

    Entries expire ``ttl_seconds`` after they were recorded. When the
    cache holds ``max_entries`` keys, the oldest entry is evicted to
    make room, so memory stays bounded whatever the request rate.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: How long a key is remembered.
            max_entries: Upper bound on remembered keys.
            clock: Monotonic time source, injectable for tests.

        Raises:
            ValueError: If ``ttl_seconds`` or ``max_entries`` is not positive.
        """
        if ttl_seconds <= 0:
            raise ValueError('ttl_seconds must be positive')
        if max_entries <= 0:
            raise ValueError('max_entries must be positive')
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[Hashable, float] = OrderedDict()

    def check_and_record(self, key: Hashable) -> bool:
        """Record ``key`` and report whether it was already known.

        Args:
            key: Request key.

        Returns:
            True if the key was seen within the retention window,
            False if it is new (it is recorded now).
        """
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if key in self._entries:
                return True
            if len(self._entries) >= self._max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = now
            return False

    def discard(self, key: Hashable) -> None:
        """Forget ``key`` so a retry is handled again."""
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: object) -> bool:
        """Check membership without recording."""
        with self._lock:
            self._evict_expired(self._clock())
            return key in self._entries

    def __len__(self) -> int:
        """Number of live entries."""
        with self._lock:
            self._evict_expired(self._clock())
            return len(self._entries)

    def _evict_expired(self, now: float) -> None:
        # Entries are kept in insertion order, so expired ones sit at the front
        cutoff = now - self._ttl
        while self._entries:
            oldest_key, recorded_at = next(iter(self._entries.items()))
            if recorded_at > cutoff:
                break
            del self._entries[oldest_key]
