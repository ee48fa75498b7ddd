"""Per-key mutual exclusion primitives.

``KeyedLock`` hands out one lock per key (a directory path, an upload
key) and forgets the lock once nobody holds or waits for it, so the
table only grows with the number of keys in use at the same time.

``SingleFlight`` builds on it to admit at most one in-flight operation
per key: a second caller is turned away instead of waiting.
"""

import logging
import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from typing import final

logger = logging.getLogger(__name__)


@final
class KeyedLock:
    """Table of locks keyed by arbitrary hashable values."""

    def __init__(self) -> None:
        """Initialize an empty lock table."""
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._references: dict[Hashable, int] = {}

    def acquire(
        self,
        key: Hashable,
        blocking: bool = True,
        timeout: float = -1,
    ) -> bool:
        """Acquire the lock for ``key``.

        Args:
            key: Lock key.
            blocking: Wait for the lock if it is held.
            timeout: Maximum seconds to wait when blocking, -1 for no limit.

        Returns:
            True if the lock was acquired.
        """
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
                self._references[key] = 0
            self._references[key] += 1

        if blocking:
            acquired = lock.acquire(timeout=timeout)
        else:
            acquired = lock.acquire(blocking=False)

        if not acquired:
            self._drop_reference(key)
        return acquired

    def release(self, key: Hashable) -> None:
        """Release the lock for ``key``.

        Args:
            key: Lock key previously acquired.

        Raises:
            RuntimeError: If the key is not currently locked.
        """
        with self._guard:
            lock = self._locks.get(key)
            if lock is None or not lock.locked():
                raise RuntimeError(f'Lock for {key!r} is not held')
            lock.release()
        self._drop_reference(key)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Lock key.

        Yields:
            Nothing; the lock is held while the block runs.
        """
        self.acquire(key)
        try:
            yield
        finally:
            self.release(key)

    def is_locked(self, key: Hashable) -> bool:
        """Check whether ``key`` is currently held."""
        with self._guard:
            lock = self._locks.get(key)
            return lock is not None and lock.locked()

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)

    def _drop_reference(self, key: Hashable) -> None:
        with self._guard:
            self._references[key] -= 1
            if self._references[key] == 0:
                del self._references[key]
                del self._locks[key]


@final
class SingleFlight:
    """Admit at most one in-flight operation per key.

    Usage:
        if not gate.try_enter(key):
            raise SomethingBusy()
        try:
            ...
        finally:
            gate.leave(key)
    """

    def __init__(self) -> None:
        """Initialize an empty gate."""
        self._locks = KeyedLock()

    def try_enter(self, key: Hashable) -> bool:
        """Claim ``key`` without waiting.

        Args:
            key: Operation key.

        Returns:
            True if the caller now owns the key, False if it is in flight.
        """
        entered = self._locks.acquire(key, blocking=False)
        if not entered:
            logger.debug('Operation already in flight: %r', key)
        return entered

    def leave(self, key: Hashable) -> None:
        """Release a key claimed with ``try_enter``."""
        self._locks.release(key)

    def in_flight(self, key: Hashable) -> bool:
        """Check whether an operation for ``key`` is running."""
        return self._locks.is_locked(key)
