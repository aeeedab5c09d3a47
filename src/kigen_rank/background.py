"""Fire-and-forget task runner.

Submitted callables run on a small thread pool. Their failures are logged
and swallowed; callers never wait on them unless they ask to.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

logger = logging.getLogger(__name__)


class BackgroundTasks:
    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="kigen-bg")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, name: str, fn: Callable[..., object], *args, **kwargs) -> Future | None:
        """Schedule fn and return immediately. Returns None once shut down."""
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            logger.warning("Background runner is shut down, dropping task %s", name)
            return None
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._finished(name, f))
        return future

    def _finished(self, name: str, future: Future) -> None:
        if future.cancelled():
            logger.debug("Background task %s cancelled", name)
        elif future.exception() is not None:
            exc = future.exception()
            logger.warning("Background task %s failed: %s", name, exc, exc_info=exc)
        with self._lock:
            self._pending.discard(future)

    def wait(self, timeout: float | None = None) -> None:
        """Block until every task, including ones queued by other tasks, has finished."""
        while True:
            with self._lock:
                pending = set(self._pending)
            if not pending:
                return
            done, not_done = wait(pending, timeout=timeout)
            if not_done:
                return

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class InlineTasks:
    """Runs tasks synchronously on submit, with the same error swallowing."""

    def submit(self, name: str, fn: Callable[..., object], *args, **kwargs) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            logger.warning("Background task %s failed: %s", name, exc, exc_info=True)

    def wait(self, timeout: float | None = None) -> None:
        pass

    def shutdown(self, wait: bool = True) -> None:
        pass
