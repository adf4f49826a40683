"""
Tracked fire-and-forget background work.

Each submitted unit runs on its own thread with no cap on concurrency.
Callers never wait on it, but the futures are kept so tests and shutdown
can join outstanding work.
"""

import threading
from concurrent.futures import Future, wait
from typing import Any, Callable, List, Optional, Set

import structlog

logger = structlog.get_logger()


class TaskTracker:
    """Runs callables on background threads and tracks their completion."""

    def __init__(self, name: str = "waitron-task"):
        self.name = name
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._counter = 0

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Start fn(*args, **kwargs) on a new daemon thread."""
        future: Future = Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args, **kwargs)
            except BaseException as e:
                logger.error("background_task_failed", task=thread.name, error=str(e))
                future.set_exception(e)
            else:
                future.set_result(result)
            finally:
                with self._lock:
                    self._pending.discard(future)

        with self._lock:
            self._counter += 1
            thread = threading.Thread(target=run, name=f"{self.name}-{self._counter}", daemon=True)
            self._pending.add(future)

        thread.start()
        return future

    @property
    def pending(self) -> List[Future]:
        with self._lock:
            return list(self._pending)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for all outstanding work.

        Returns:
            True if nothing is left running
        """
        done, not_done = wait(self.pending, timeout=timeout)
        return not not_done
