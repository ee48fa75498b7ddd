"""Bounded thread pool for chunk writes and background cleanup.

``ThreadPoolExecutor`` queues without limit, so submissions pass through
a semaphore sized ``max_workers + queue_size``. When every slot is taken
a submission waits up to ``block_timeout`` seconds for one to free up,
then fails with ``WorkerPoolSaturatedError``. A timeout of 0 rejects
immediately.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Final, final

from django.conf import settings

from server.apps.files.exceptions import WorkerPoolSaturatedError

logger = logging.getLogger(__name__)

_THREAD_NAME_PREFIX: Final = 'files-worker'

_executor_lock = threading.Lock()
_executor: 'BoundedExecutor | None' = None


@final
class BoundedExecutor:
    """Thread pool with a bounded submission queue."""

    def __init__(
        self,
        max_workers: int,
        queue_size: int,
        block_timeout: float = 0,
    ) -> None:
        """Initialize the pool.

        Args:
            max_workers: Maximum number of worker threads.
            queue_size: Maximum number of tasks waiting for a worker.
            block_timeout: Seconds to wait for a free slot, 0 to reject.

        Raises:
            ValueError: If ``max_workers`` < 1 or ``queue_size`` < 0.
        """
        if max_workers < 1:
            raise ValueError('max_workers must be at least 1')
        if queue_size < 0:
            raise ValueError('queue_size must not be negative')
        self.capacity = max_workers + queue_size
        self._block_timeout = block_timeout
        self._slots = threading.BoundedSemaphore(self.capacity)
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=_THREAD_NAME_PREFIX,
        )

    def submit(
        self,
        fn: Callable[..., Any],
        /,
        *args: Any,
        **kwargs: Any,
    ) -> Future[Any]:
        """Submit a task, applying back-pressure when the queue is full.

        Args:
            fn: Callable to run on a worker thread.
            args: Positional arguments for ``fn``.
            kwargs: Keyword arguments for ``fn``.

        Returns:
            Future for the task result.

        Raises:
            WorkerPoolSaturatedError: If no slot frees up in time.
        """
        if self._block_timeout > 0:
            acquired = self._slots.acquire(timeout=self._block_timeout)
        else:
            acquired = self._slots.acquire(blocking=False)

        if not acquired:
            logger.warning(
                'Worker pool saturated (%d slots), rejecting task',
                self.capacity,
            )
            raise WorkerPoolSaturatedError(
                f'Worker pool is saturated ({self.capacity} tasks pending)',
            )

        try:
            future = self._pool.submit(fn, *args, **kwargs)
        except BaseException:
            self._slots.release()
            raise

        future.add_done_callback(self._free_slot)
        return future

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and optionally wait for running ones."""
        self._pool.shutdown(wait=wait)

    def _free_slot(self, _future: Future[Any]) -> None:
        self._slots.release()


def get_executor() -> BoundedExecutor:
    """Get the process-wide pool, creating it from settings on first use.

    Returns:
        Shared BoundedExecutor.
    """
    global _executor  # noqa: WPS420
    with _executor_lock:
        if _executor is None:
            _executor = BoundedExecutor(
                max_workers=getattr(settings, 'FILES_WORKER_MAX_WORKERS', 10),
                queue_size=getattr(settings, 'FILES_WORKER_QUEUE_SIZE', 100),
                block_timeout=getattr(settings, 'FILES_WORKER_BLOCK_TIMEOUT', 5.0),
            )
            logger.info(
                'Started background pool with %d slots',
                _executor.capacity,
            )
        return _executor


def shutdown_executor(wait: bool = True) -> None:
    """Shut down the shared pool; the next ``get_executor`` builds a new one."""
    global _executor  # noqa: WPS420
    with _executor_lock:
        executor = _executor
        _executor = None
    if executor is not None:
        executor.shutdown(wait=wait)


def run_in_background(
    description: str,
    fn: Callable[..., Any],
    /,
    *args: Any,
    **kwargs: Any,
) -> Future[Any] | None:
    """Run a fire-and-forget task on the shared pool.

    Failures are logged and dropped, never retried. A saturated pool
    drops the task as well; callers use this only for work that is safe
    to skip, such as removing leftover chunks.

    Args:
        description: Human-readable task name for logs.
        fn: Callable to run.
        args: Positional arguments for ``fn``.
        kwargs: Keyword arguments for ``fn``.

    Returns:
        Future of the task, or None if it was dropped.
    """
    try:
        return get_executor().submit(
            _run_logged,
            description,
            fn,
            *args,
            **kwargs,
        )
    except WorkerPoolSaturatedError:
        logger.warning('Dropped background task: %s', description)
        return None


def _run_logged(
    description: str,
    fn: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> None:
    try:
        fn(*args, **kwargs)
    except Exception:
        # Background work is best-effort, the caller already returned
        logger.exception('Background task failed: %s', description)
