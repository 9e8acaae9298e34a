"""Caller-facing entry point: run or debug a function through the SAM CLI.

``execute`` never blocks on the process. It starts the CLI (and, for debug
runs, the debugger listener and coordinator) and returns a
:class:`ResultFuture`. A pump thread owns the run's :class:`OutputAggregator`
and drains the process event queue; when it sees the termination event the
aggregate is frozen, debug resources are released and the result is written
to the future.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING
from typing import Callable

from samrunner.config import get_settings
from samrunner.debug.backend import SocketDebuggerBackend
from samrunner.debug.breakpoints import BreakpointManager
from samrunner.debug.coordinator import DebugAttachCoordinator
from samrunner.debug.coordinator import DebugSession
from samrunner.debug.manager_thread import DebuggerManagerThread
from samrunner.errors import ExecutionTimeoutError
from samrunner.execution.launcher import OutputEvent
from samrunner.execution.launcher import ProcessLauncher
from samrunner.execution.output import OutputAggregator
from samrunner.execution.result_future import ResultFuture
from samrunner.models import ExecutionMode
from samrunner.models import ExecutionResult

if TYPE_CHECKING:
    from samrunner.config import SamSettings
    from samrunner.errors import DebugAttachError
    from samrunner.execution.launcher import ProcessHandle
    from samrunner.models import RunConfiguration

logger = logging.getLogger(__name__)


class LocalInvokeExecutor:
    """Runs functions locally through ``sam local invoke``."""

    def __init__(
        self,
        settings: SamSettings | None = None,
        *,
        launcher: ProcessLauncher | None = None,
        breakpoints: BreakpointManager | None = None,
    ) -> None:
        self._settings = settings
        self._launcher = launcher or ProcessLauncher(settings)
        self.breakpoints = breakpoints or BreakpointManager()
        self._handles: dict[ResultFuture, ProcessHandle] = {}
        self._lock = threading.Lock()

    @property
    def settings(self) -> SamSettings:
        return self._settings or get_settings()

    def execute(
        self,
        configuration: RunConfiguration,
        mode: ExecutionMode | None = None,
    ) -> ResultFuture:
        """Start the run and return its future.

        Raises:
            LaunchError: If the CLI could not be started. No future is created.
        """
        if mode is not None and mode is not configuration.request.mode:
            configuration = dataclasses.replace(
                configuration, request=configuration.request.with_mode(mode)
            )

        if configuration.request.mode is ExecutionMode.DEBUG:
            return self._execute_debug(configuration)

        handle = self._launcher.launch(configuration)
        future = ResultFuture()
        self._start_pump(handle, future)
        return future

    def _execute_debug(self, configuration: RunConfiguration) -> ResultFuture:
        settings = self.settings
        session = DebugSession(self.breakpoints.snapshot())
        future = ResultFuture(debug_session=session)
        manager = DebuggerManagerThread()
        backend = SocketDebuggerBackend(
            manager,
            host=settings.debug_host,
            grace_seconds=settings.debug_attach_grace_seconds,
        )

        try:
            port = backend.listen()
            handle = self._launcher.launch(configuration, debug_port=port)
        except Exception:
            backend.close()
            manager.stop()
            raise

        def _attach_failed(error: DebugAttachError) -> None:
            if future.set_exception(error):
                handle.terminate()

        coordinator = DebugAttachCoordinator(session, backend, on_attach_failed=_attach_failed)

        def _release_debugger() -> None:
            coordinator.process_terminated()
            manager.stop()
            backend.close()

        coordinator.start()
        self._start_pump(handle, future, on_terminated=_release_debugger)
        return future

    def _start_pump(
        self,
        handle: ProcessHandle,
        future: ResultFuture,
        on_terminated: Callable[[], None] | None = None,
    ) -> None:
        with self._lock:
            self._handles[future] = handle
        aggregator = OutputAggregator()

        def _pump() -> None:
            while True:
                event = handle.events.get()
                if isinstance(event, OutputEvent):
                    aggregator.on_chunk(event.chunk.stream, event.chunk.text)
                    continue
                break

            aggregate = aggregator.finalize()
            if on_terminated is not None:
                try:
                    on_terminated()
                except Exception:
                    logger.exception("Error releasing debugger resources")
            with self._lock:
                self._handles.pop(future, None)
            future.set_result(ExecutionResult.from_aggregate(event.exit_code, aggregate))

        threading.Thread(target=_pump, name=f"samrunner-pump-{handle.pid}", daemon=True).start()

    def run(
        self,
        configuration: RunConfiguration,
        mode: ExecutionMode | None = None,
        timeout: float | None = None,
        *,
        terminate_on_timeout: bool = True,
    ) -> ExecutionResult:
        """Execute and wait, killing the process if the wait times out.

        The CLI runs in its own session and does not see the terminal's
        interrupt, so an interrupted wait always kills it.
        """
        if timeout is None:
            timeout = self.settings.default_timeout_seconds
        future = self.execute(configuration, mode)
        try:
            return future.result(timeout)
        except ExecutionTimeoutError:
            if terminate_on_timeout:
                self._terminate(future)
            raise
        except KeyboardInterrupt:
            self._terminate(future)
            raise

    def _terminate(self, future: ResultFuture) -> None:
        with self._lock:
            handle = self._handles.get(future)
        if handle is not None:
            handle.terminate()
