"""Debuggee side of the samrunner debug connection.

A SAM-compatible runtime that executes a Python handler with
``--debug-port`` calls :func:`run_handler`. The agent connects back to the
orchestrator, announces itself, applies the breakpoints it is sent and waits
for ``configurationDone`` before running the handler. Each breakpoint hit
sends a ``stopped`` event carrying a fresh ``suspendId`` and blocks the
handler until the matching ``continue`` command arrives.
"""

from __future__ import annotations

import bdb
import contextlib
import itertools
import logging
import os
import queue
import socket
import threading
from typing import Any
from typing import Callable
from typing import TypeVar

from samrunner.errors import DebugProtocolError
from samrunner.ipc import KIND_COMMAND
from samrunner.ipc import KIND_EVENT
from samrunner.ipc import read_message
from samrunner.ipc import write_message

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONNECT_TIMEOUT = 10.0


class DebuggeeConnection:
    """Framed connection to the orchestrator with a background command reader."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._rfile = sock.makefile("rb")
        self._wfile = sock.makefile("wb")
        self._write_lock = threading.Lock()
        self._commands: queue.Queue[dict[str, Any] | None] = queue.Queue()
        self._reader = threading.Thread(
            target=self._receive, name="samrunner-debuggee-reader", daemon=True
        )
        self._reader.start()

    @classmethod
    def connect(
        cls, host: str, port: int, timeout: float = DEFAULT_CONNECT_TIMEOUT
    ) -> DebuggeeConnection:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.settimeout(None)
        return cls(sock)

    def _receive(self) -> None:
        try:
            while True:
                received = read_message(self._rfile)
                if received is None:
                    break
                kind, message = received
                if kind == KIND_COMMAND:
                    self._commands.put(message)
        except (OSError, ValueError, DebugProtocolError):
            logger.debug("Debug connection closed", exc_info=True)
        finally:
            self._commands.put(None)

    def send_event(self, event: str, **fields: Any) -> None:
        message = {"event": event, **fields}
        with self._write_lock:
            write_message(self._wfile, KIND_EVENT, message)

    def next_command(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Return the next command, or ``None`` once the connection is gone."""
        return self._commands.get(timeout=timeout)

    def close(self) -> None:
        for stream in (self._wfile, self._rfile):
            with contextlib.suppress(OSError, ValueError):
                stream.close()
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        with contextlib.suppress(OSError):
            self._sock.close()


class HandlerDebugger(bdb.Bdb):
    """Stops at line breakpoints and waits for the orchestrator to resume."""

    def __init__(self, connection: DebuggeeConnection, skip: Any = None) -> None:
        super().__init__(skip)
        self._connection = connection
        self._suspend_ids = itertools.count(1)
        self._first_line = True
        self.connected = True

    def apply_breakpoints(self, path: str, specs: list[dict[str, Any]]) -> list[dict[str, Any]]:
        path = self.canonic(path)
        self.clear_all_file_breaks(path)
        results: list[dict[str, Any]] = []
        for spec in specs:
            line = int(spec["line"])
            error = self.set_break(path, line, cond=spec.get("condition"))
            result: dict[str, Any] = {"line": line, "verified": error is None}
            if error is not None:
                result["message"] = error
            results.append(result)
        return results

    def _handle_command(self, command: dict[str, Any]) -> str | None:
        name = command.get("command")
        arguments = command.get("arguments") or {}
        if name == "setBreakpoints":
            path = arguments.get("path", "")
            results = self.apply_breakpoints(path, arguments.get("breakpoints", []))
            self._connection.send_event("breakpoints", path=path, breakpoints=results)
        elif name not in ("configurationDone", "continue"):
            logger.debug("Ignoring command %s", name)
        return name

    def configure(self) -> None:
        """Apply commands until ``configurationDone`` or disconnect."""
        while True:
            command = self._connection.next_command()
            if command is None:
                self.connected = False
                return
            if self._handle_command(command) == "configurationDone":
                return

    def _wait_for_resume(self, suspend_id: int) -> None:
        while self.connected:
            command = self._connection.next_command()
            if command is None:
                self.connected = False
                return
            name = self._handle_command(command)
            if name == "continue":
                requested = (command.get("arguments") or {}).get("suspendId")
                if requested in (None, suspend_id):
                    return

    def user_line(self, frame: Any) -> None:
        # The first line after runcall() is reported in step mode, not
        # because of a breakpoint.
        if self._first_line:
            self._first_line = False
            if not self.break_here(frame):
                self.set_continue()
                return

        if not self.connected:
            self.set_continue()
            return

        suspend_id = next(self._suspend_ids)
        try:
            self._connection.send_event(
                "stopped",
                suspendId=suspend_id,
                reason="breakpoint",
                path=self.canonic(frame.f_code.co_filename),
                line=frame.f_lineno,
                threadId=threading.get_ident(),
            )
        except OSError:
            self.connected = False
        else:
            self._wait_for_resume(suspend_id)
        self.set_continue()


def run_handler(
    handler: Callable[..., T],
    *args: Any,
    host: str = "127.0.0.1",
    port: int,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> T | None:
    """Run ``handler(*args)`` under the debugger attached to ``host:port``."""
    connection = DebuggeeConnection.connect(host, port, connect_timeout)
    try:
        debugger = HandlerDebugger(connection)
        connection.send_event("attached", pid=os.getpid())
        debugger.configure()
        return debugger.runcall(handler, *args)
    finally:
        with contextlib.suppress(OSError, ValueError):
            connection.send_event("exited")
        connection.close()
