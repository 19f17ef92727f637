"""Detached background work with its own error sink."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Set

from ..logging import get_logger

LOGGER = get_logger(__name__)


class BackgroundTasks:
    """Fire-and-forget runner.

    Submitted callables run on a small thread pool. Failures are logged and
    never re-raised, so callers cannot observe them; ``drain`` lets tests and
    shutdown code wait for outstanding work.
    """

    def __init__(self, max_workers: int = 2, name: str = "brutus-bg") -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        with self._lock:
            if self._closed:
                LOGGER.warning("Background runner closed; dropping task %s", label)
                return None
            future = self._executor.submit(fn, *args, **kwargs)
            self._pending.add(future)
        future.add_done_callback(lambda done: self._finished(label, done))
        return future

    def _finished(self, label: str, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            LOGGER.info("Background task %s was cancelled", label)
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.error("Background task %s failed", label, exc_info=exc)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every task submitted so far has finished."""

        with self._lock:
            pending = set(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait_for_pending)


__all__ = ["BackgroundTasks"]
