"""
Fire-and-forget persistence: one serialized background worker per store.
Callers update in-memory state first, then submit the write here. Failures are logged
and handed to the error callback as PersistenceError; nothing is rolled back.
"""
import logging
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from src.errors import PersistenceError

logger = logging.getLogger(__name__)


class PersistenceQueue:
    def __init__(self, name: str, on_error: Optional[Callable[[PersistenceError], None]] = None):
        self.name = name
        self.on_error = on_error
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"persist-{name}")
        self._lock = threading.Lock()
        self._pending: List[Future] = []
        # Shuts the worker down when the queue is garbage-collected without close().
        self._finalizer = weakref.finalize(self, self._executor.shutdown, False)

    def submit(self, fn: Callable, *args, description: str = "write") -> Future:
        future = self._executor.submit(self._run, fn, args, description)
        with self._lock:
            self._pending.append(future)
        future.add_done_callback(self._forget)
        return future

    def _run(self, fn: Callable, args: tuple, description: str) -> bool:
        try:
            fn(*args)
            return True
        except Exception as exc:
            self._report(exc, description)
            return False

    def _report(self, exc: Exception, description: str) -> None:
        logger.warning(f"Persistence failed ({self.name}, {description}): {exc}")
        error = exc if isinstance(exc, PersistenceError) else PersistenceError(f"{self.name}: {description} failed: {exc}")
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as cb_err:
            logger.error(f"Persistence error callback failed: {cb_err}")

    def _forget(self, future: Future) -> None:
        with self._lock:
            if future in self._pending:
                self._pending.remove(future)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for all submitted writes. Returns False if some are still running after timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)
        self._finalizer.detach()
