"""
core/tasks.py -- Tracked background work that outlives the request.

Work that the response does not depend on (e.g. sending the welcome email
after registration) is handed to a TaskTracker. The tracker is an explicit
handle owned by the application lifespan -- there is no module-level pool or
counter -- and is passed to whatever code needs to defer work.

Guarantees:
  - submit() never blocks on the task itself.
  - A failing task is logged and contained; it cannot crash the process and
    cannot roll back the write that preceded it (that write is already
    committed by the time the task is submitted).
  - drain() waits for every outstanding task. The lifespan calls it on
    shutdown so in-flight emails are not lost.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

logger = logging.getLogger("marquee.tasks")


class TaskTracker:
    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="marquee-bg")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[..., object], *args, **kwargs) -> Future:
        with self._lock:
            if self._closed:
                raise RuntimeError("TaskTracker is shut down")
            future = self._executor.submit(self._run, fn, *args, **kwargs)
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    @staticmethod
    def _run(fn: Callable[..., object], *args, **kwargs) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("background task %s failed", getattr(fn, "__name__", repr(fn)))

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for outstanding tasks. Returns True if all of them finished."""
        with self._lock:
            futures = list(self._pending)
        if futures:
            logger.info("waiting for %d background task(s)", len(futures))
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop accepting work, drain, and release the worker threads."""
        with self._lock:
            self._closed = True
        self.drain(timeout)
        self._executor.shutdown(wait=timeout is None)
