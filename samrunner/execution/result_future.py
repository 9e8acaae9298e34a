"""Write-once, timeout-bounded handle to an execution result."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING
from typing import Callable

from samrunner.errors import ExecutionTimeoutError

if TYPE_CHECKING:
    from samrunner.debug.coordinator import DebugSession
    from samrunner.models import ExecutionResult

logger = logging.getLogger(__name__)

_PENDING = "pending"
_FINISHED = "finished"


class ResultFuture:
    """Single-resolution cell for one run's ``ExecutionResult``.

    The first ``set_result``/``set_exception`` wins; later writes return
    ``False`` and change nothing. Waiting with a timeout never affects the
    process: a timed-out wait means the result is unknown and the process
    may still be running.
    """

    def __init__(self, debug_session: DebugSession | None = None) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._state = _PENDING
        self._result: ExecutionResult | None = None
        self._exception: BaseException | None = None
        self._callbacks: list[Callable[[ResultFuture], None]] = []
        self.debug_session = debug_session

    def done(self) -> bool:
        return self._done.is_set()

    def set_result(self, result: ExecutionResult) -> bool:
        return self._resolve(result, None)

    def set_exception(self, exception: BaseException) -> bool:
        return self._resolve(None, exception)

    def _resolve(self, result: ExecutionResult | None, exception: BaseException | None) -> bool:
        with self._lock:
            if self._state != _PENDING:
                logger.debug("Ignoring late resolution of an already finished run")
                return False
            self._state = _FINISHED
            self._result = result
            self._exception = exception
            callbacks, self._callbacks = self._callbacks, []
            self._done.set()

        for callback in callbacks:
            self._invoke_callback(callback)
        return True

    def _invoke_callback(self, callback: Callable[[ResultFuture], None]) -> None:
        try:
            callback(self)
        except Exception:
            logger.exception("Error in result callback")

    def add_done_callback(self, callback: Callable[[ResultFuture], None]) -> None:
        """Call ``callback(self)`` once resolved, immediately if already done."""
        with self._lock:
            if self._state == _PENDING:
                self._callbacks.append(callback)
                return
        self._invoke_callback(callback)

    def remove_done_callback(self, callback: Callable[[ResultFuture], None]) -> bool:
        """Unregister a pending callback; return whether it was registered."""
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                return False
            return True

    def _outcome(self) -> ExecutionResult:
        if self._exception is not None:
            raise self._exception
        assert self._result is not None
        return self._result

    def result(self, timeout: float | None = None) -> ExecutionResult:
        """Block until resolved; raise ``ExecutionTimeoutError`` on timeout."""
        if not self._done.wait(timeout):
            msg = f"No execution result after {timeout}s; the process may still be running"
            raise ExecutionTimeoutError(msg, timeout_seconds=timeout)
        return self._outcome()

    async def wait(self, timeout: float | None = None) -> ExecutionResult:
        """Asyncio variant of :meth:`result` that does not block the loop."""
        if self.done():
            return self._outcome()

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake(_future: ResultFuture) -> None:
            def _set() -> None:
                if not waiter.done():
                    waiter.set_result(None)

            if not loop.is_closed():
                loop.call_soon_threadsafe(_set)

        self.add_done_callback(_wake)
        try:
            await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError as e:
            msg = f"No execution result after {timeout}s; the process may still be running"
            raise ExecutionTimeoutError(msg, timeout_seconds=timeout) from e
        finally:
            self.remove_done_callback(_wake)
        return self._outcome()
