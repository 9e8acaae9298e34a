"""Single worker thread that runs all debugger-side work in priority order."""

from __future__ import annotations

from enum import IntEnum
import itertools
import logging
import queue
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    """Lower values run first."""

    HIGH = 0
    NORMAL = 1
    LOW = 2
    LOWEST = 3


# Sorts after every real priority so queued work drains before shutdown.
_STOP = len(Priority)


class DebuggerManagerThread:
    """Runs scheduled tasks one at a time on a dedicated thread.

    Tasks with the same priority run in the order they were scheduled.
    """

    def __init__(self, name: str = "samrunner-debugger-manager") -> None:
        self._queue: queue.PriorityQueue[tuple[int, int, Callable[[], None] | None]] = (
            queue.PriorityQueue()
        )
        self._counter = itertools.count()
        self._lock = threading.Lock()
        self._stopping = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def is_current_thread(self) -> bool:
        return threading.current_thread() is self._thread

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def schedule(self, task: Callable[[], None], priority: Priority = Priority.NORMAL) -> bool:
        """Queue ``task``. Returns ``False`` once the thread is stopping."""
        with self._lock:
            if self._stopping:
                logger.debug("Dropping task scheduled after stop: %r", task)
                return False
            self._queue.put((int(priority), next(self._counter), task))
        return True

    def stop(self, timeout: float | None = None) -> None:
        """Finish queued tasks, then exit the thread."""
        with self._lock:
            if not self._stopping:
                self._stopping = True
                self._queue.put((_STOP, next(self._counter), None))
        if not self.is_current_thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            _priority, _seq, task = self._queue.get()
            if task is None:
                return
            try:
                task()
            except Exception:
                logger.exception("Debugger manager task failed")
