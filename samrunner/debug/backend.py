"""Debugger backend used by the attach coordinator.

The coordinator only relies on the :class:`DebuggerBackend` protocol: a
stream of session events and a way to issue commands, most importantly
resume-at-priority. :class:`SocketDebuggerBackend` implements it for
debuggees running :mod:`samrunner.debuggee.agent`: it listens on a local
port that is handed to ``sam local invoke --debug-port``, accepts exactly one
connection and translates framed JSON messages into events.

Events are never delivered on the socket thread. Each one is scheduled on the
:class:`DebuggerManagerThread`, which is where the coordinator runs.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
import json
import logging
import socket
import threading
import time
from typing import TYPE_CHECKING
from typing import Any
from typing import Callable
from typing import Protocol
from typing import Union
from typing import runtime_checkable

from samrunner.debug.manager_thread import Priority
from samrunner.errors import DebugAttachError
from samrunner.errors import DebugProtocolError
from samrunner.ipc import KIND_COMMAND
from samrunner.ipc import KIND_EVENT
from samrunner.ipc import pack_frame
from samrunner.ipc import read_message

if TYPE_CHECKING:
    from samrunner.debug.manager_thread import DebuggerManagerThread

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuspendHandle:
    """A paused execution point; valid only until it is resumed."""

    suspend_id: int
    path: str | None = None
    line: int | None = None
    thread_id: int | None = None
    reason: str = "breakpoint"


@dataclass(frozen=True)
class SessionAttached:
    pid: int | None = None


@dataclass(frozen=True)
class ExecutionPaused:
    handle: SuspendHandle


@dataclass(frozen=True)
class BreakpointsVerified:
    path: str
    breakpoints: tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class SessionDetached:
    reason: str = "closed"


@dataclass(frozen=True)
class AttachFailed:
    error: DebugAttachError


DebuggerEvent = Union[
    SessionAttached, ExecutionPaused, BreakpointsVerified, SessionDetached, AttachFailed
]


@runtime_checkable
class DebuggerBackend(Protocol):
    """What the coordinator needs from a debugger implementation."""

    def listen(self) -> int:
        """Prepare to accept the debuggee and return the port it should use."""
        ...

    def start(self, dispatch: Callable[[DebuggerEvent], None]) -> None:
        """Begin the single attach attempt; events are passed to ``dispatch``."""
        ...

    def send_command(self, command: str, arguments: dict[str, Any] | None = None) -> None:
        ...

    def resume(
        self,
        handle: SuspendHandle,
        priority: Priority = Priority.LOWEST,
        on_resumed: Callable[[SuspendHandle], None] | None = None,
    ) -> None:
        """Schedule a resume of ``handle`` at ``priority``.

        ``on_resumed`` runs on the manager thread once the debuggee has been
        told to continue. It is not called if the command could not be sent.
        """
        ...

    def close(self) -> None:
        ...


class SocketDebuggerBackend:
    """Accepts one debuggee connection on a local TCP port."""

    def __init__(
        self,
        manager: DebuggerManagerThread,
        *,
        host: str = "127.0.0.1",
        grace_seconds: float = 60.0,
    ) -> None:
        self._manager = manager
        self._host = host
        self._grace_seconds = grace_seconds
        self._server: socket.socket | None = None
        self._conn: socket.socket | None = None
        self._write_lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self._dispatch: Callable[[DebuggerEvent], None] | None = None
        self._closed = False
        self.port: int | None = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._closed

    def listen(self) -> int:
        if self._server is not None:
            assert self.port is not None
            return self.port
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server.bind((self._host, 0))
            server.listen(1)
        except OSError:
            server.close()
            raise
        self._server = server
        self.port = server.getsockname()[1]
        logger.debug("Debugger listening on %s:%s", self._host, self.port)
        return self.port

    def start(self, dispatch: Callable[[DebuggerEvent], None]) -> None:
        if self._reader is not None:
            msg = "Debugger attach was already started"
            raise RuntimeError(msg)
        self.listen()
        self._dispatch = dispatch
        self._reader = threading.Thread(
            target=self._serve,
            name=f"samrunner-debug-reader-{self.port}",
            daemon=True,
        )
        self._reader.start()

    def _post(self, event: DebuggerEvent) -> None:
        dispatch = self._dispatch
        if dispatch is None:
            return
        self._manager.schedule(lambda: dispatch(event), Priority.NORMAL)

    def _fail_attach(self, message: str, cause: Exception | None = None) -> None:
        error = DebugAttachError(message, grace_seconds=self._grace_seconds, cause=cause)
        logger.warning("%s", error)
        self._post(AttachFailed(error))

    def _accept(self) -> socket.socket | None:
        server = self._server
        assert server is not None
        deadline = time.monotonic() + self._grace_seconds
        server.settimeout(self._grace_seconds)
        try:
            conn, _addr = server.accept()
        except socket.timeout:
            if not self._closed:
                self._fail_attach(f"Debugger did not attach within {self._grace_seconds}s")
            return None
        except OSError as e:
            if not self._closed:
                self._fail_attach("Debugger listener failed", cause=e)
            return None
        finally:
            server.close()
            self._server = None

        conn.settimeout(max(deadline - time.monotonic(), 0.001))
        self._conn = conn
        return conn

    def _serve(self) -> None:
        conn = self._accept()
        if conn is None:
            return

        rfile = conn.makefile("rb")
        attached = False
        reason = "closed"
        try:
            while True:
                try:
                    received = read_message(rfile)
                except socket.timeout as e:
                    self._fail_attach(
                        f"Debuggee did not announce itself within {self._grace_seconds}s",
                        cause=e,
                    )
                    return
                if received is None:
                    break
                kind, message = received
                if kind != KIND_EVENT:
                    logger.warning("Ignoring unexpected frame kind %s from debuggee", kind)
                    continue
                event = self._translate(message)
                if event is None:
                    continue
                if isinstance(event, SessionAttached) and not attached:
                    attached = True
                    conn.settimeout(None)
                self._post(event)
        except DebugProtocolError:
            logger.exception("Malformed message from debuggee")
            reason = "protocol error"
        except OSError:
            if not self._closed:
                logger.debug("Debug connection lost", exc_info=True)
            reason = "connection lost"
        finally:
            rfile.close()

        if attached:
            self._post(SessionDetached(reason))
        elif not self._closed:
            self._fail_attach("Debuggee disconnected before attaching")

    def _translate(self, message: dict[str, Any]) -> DebuggerEvent | None:
        event_type = message.get("event")
        if event_type == "attached":
            return SessionAttached(pid=message.get("pid"))
        if event_type == "stopped":
            try:
                suspend_id = int(message["suspendId"])
            except (KeyError, TypeError, ValueError) as e:
                msg = f"Invalid suspendId in stopped event: {message.get('suspendId')!r}"
                raise DebugProtocolError(msg, frame_kind=KIND_EVENT, cause=e) from e
            return ExecutionPaused(
                SuspendHandle(
                    suspend_id=suspend_id,
                    path=message.get("path"),
                    line=message.get("line"),
                    thread_id=message.get("threadId"),
                    reason=message.get("reason", "breakpoint"),
                )
            )
        if event_type == "breakpoints":
            return BreakpointsVerified(
                path=message.get("path", ""),
                breakpoints=tuple(message.get("breakpoints", [])),
            )
        if event_type == "exited":
            return SessionDetached("exited")
        logger.debug("Ignoring debuggee event: %s", event_type)
        return None

    def send_command(self, command: str, arguments: dict[str, Any] | None = None) -> None:
        conn = self._conn
        if conn is None or self._closed:
            msg = "No debuggee is connected"
            raise RuntimeError(msg)
        message: dict[str, Any] = {"command": command}
        if arguments:
            message["arguments"] = arguments
        frame = pack_frame(KIND_COMMAND, json.dumps(message).encode("utf-8"))
        with self._write_lock:
            conn.sendall(frame)

    def resume(
        self,
        handle: SuspendHandle,
        priority: Priority = Priority.LOWEST,
        on_resumed: Callable[[SuspendHandle], None] | None = None,
    ) -> None:
        def _send_resume() -> None:
            try:
                self.send_command("continue", {"suspendId": handle.suspend_id})
            except (OSError, RuntimeError):
                logger.warning("Could not resume suspend point %s", handle.suspend_id)
                return
            logger.info("Resumed suspend point %s", handle.suspend_id)
            if on_resumed is not None:
                on_resumed(handle)

        self._manager.schedule(_send_resume, priority)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sock in (self._server, self._conn):
            if sock is None:
                continue
            # shutdown wakes a reader blocked in accept/recv on another thread
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            try:
                sock.close()
            except OSError:
                logger.debug("Failed to close debug socket", exc_info=True)
