from __future__ import annotations

import socket
import threading

import pytest

from samrunner.debug import DebugAttachCoordinator
from samrunner.debug import DebuggerManagerThread
from samrunner.debug import DebugSession
from samrunner.debug import SessionState
from samrunner.debug import SocketDebuggerBackend
from samrunner.debug import SuspendHandle
from samrunner.errors import DebugAttachError
from samrunner.ipc import KIND_COMMAND
from samrunner.ipc import KIND_EVENT
from samrunner.ipc import read_message
from samrunner.ipc import write_message
from samrunner.models import LineBreakpoint


class FakeDebuggee:
    """Client side of the debug connection, driven by the test."""

    def __init__(self, port: int) -> None:
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=5)
        self.rfile = self.sock.makefile("rb")
        self.wfile = self.sock.makefile("wb")

    def send(self, **message) -> None:
        write_message(self.wfile, KIND_EVENT, message)

    def receive(self) -> dict:
        received = read_message(self.rfile)
        assert received is not None
        kind, message = received
        assert kind == KIND_COMMAND
        return message

    def close(self) -> None:
        self.rfile.close()
        self.wfile.close()
        self.sock.close()


@pytest.fixture
def manager():
    manager = DebuggerManagerThread()
    yield manager
    manager.stop(5)


def _start(manager, grace_seconds=5.0, breakpoints=frozenset()):
    session = DebugSession(frozenset(breakpoints))
    failures: list[DebugAttachError] = []
    failed = threading.Event()

    def on_failed(error: DebugAttachError) -> None:
        failures.append(error)
        failed.set()

    backend = SocketDebuggerBackend(manager, grace_seconds=grace_seconds)
    port = backend.listen()
    coordinator = DebugAttachCoordinator(session, backend, on_attach_failed=on_failed)
    coordinator.start()
    return backend, port, session, failures, failed


def test_listen_uses_an_ephemeral_port(manager):
    backend = SocketDebuggerBackend(manager)
    try:
        port = backend.listen()
        assert port > 0
        assert backend.listen() == port
    finally:
        backend.close()


def test_full_attach_pause_resume_cycle(manager):
    breakpoints = {LineBreakpoint("/src/app.py", 2)}
    backend, port, session, failures, _failed = _start(manager, breakpoints=breakpoints)
    debuggee = FakeDebuggee(port)
    try:
        debuggee.send(event="attached", pid=99)
        assert debuggee.receive() == {
            "command": "setBreakpoints",
            "arguments": {"path": "/src/app.py", "breakpoints": [{"line": 2}]},
        }
        assert debuggee.receive() == {"command": "configurationDone"}
        assert session.state is SessionState.ATTACHED

        debuggee.send(event="stopped", suspendId=1, path="/src/app.py", line=2, threadId=1)
        assert debuggee.receive() == {"command": "continue", "arguments": {"suspendId": 1}}
        assert session.breakpoint_hit
        assert session.hits[0].line == 2
        assert session.wait_for_state(SessionState.ATTACHED, timeout=5)

        debuggee.send(event="exited")
        assert session.wait_for_state(SessionState.TERMINAL, timeout=5)
    finally:
        debuggee.close()
        backend.close()
    assert failures == []


def test_attach_not_observed_within_grace_period(manager):
    backend, _port, session, failures, failed = _start(manager, grace_seconds=0.1)
    try:
        assert failed.wait(5)
        assert isinstance(failures[0], DebugAttachError)
        assert failures[0].grace_seconds == 0.1
        assert session.state is SessionState.TERMINAL
    finally:
        backend.close()


def test_connection_without_attached_event_fails_attach(manager):
    backend, port, _session, failures, failed = _start(manager, grace_seconds=0.2)
    debuggee = FakeDebuggee(port)
    try:
        assert failed.wait(5)
        assert len(failures) == 1
    finally:
        debuggee.close()
        backend.close()


def test_close_before_attach_is_not_a_failure(manager):
    backend, _port, session, failures, failed = _start(manager)
    backend.close()
    assert not failed.wait(0.3)
    assert failures == []
    assert session.state is SessionState.IDLE


def test_send_command_requires_connection(manager):
    backend = SocketDebuggerBackend(manager)
    with pytest.raises(RuntimeError):
        backend.send_command("configurationDone")


def test_start_twice_is_rejected(manager):
    backend = SocketDebuggerBackend(manager)
    try:
        backend.start(lambda event: None)
        with pytest.raises(RuntimeError):
            backend.start(lambda event: None)
    finally:
        backend.close()


def test_stopped_event_without_suspend_id_ends_the_session(manager, caplog):
    backend, port, session, failures, _failed = _start(manager)
    debuggee = FakeDebuggee(port)
    try:
        debuggee.send(event="attached", pid=99)
        assert debuggee.receive() == {"command": "configurationDone"}

        debuggee.send(event="stopped", path="/src/app.py", line=2)

        assert session.wait_for_state(SessionState.TERMINAL, timeout=5)
        assert not session.breakpoint_hit
        assert "Malformed message from debuggee" in caplog.text
    finally:
        debuggee.close()
        backend.close()
    assert failures == []


def test_resume_callback_runs_only_after_continue_is_sent(manager):
    backend = SocketDebuggerBackend(manager)
    resumed = []

    backend.resume(SuspendHandle(3), on_resumed=resumed.append)
    manager.stop(5)

    assert resumed == []
