"""Debugger attach support for debug-mode runs."""

from samrunner.debug.backend import DebuggerBackend
from samrunner.debug.backend import SocketDebuggerBackend
from samrunner.debug.backend import SuspendHandle
from samrunner.debug.breakpoints import BreakpointManager
from samrunner.debug.coordinator import BreakpointHit
from samrunner.debug.coordinator import DebugAttachCoordinator
from samrunner.debug.coordinator import DebugSession
from samrunner.debug.coordinator import SessionState
from samrunner.debug.coordinator import SessionTransitionError
from samrunner.debug.manager_thread import DebuggerManagerThread
from samrunner.debug.manager_thread import Priority

__all__ = [
    "BreakpointHit",
    "BreakpointManager",
    "DebugAttachCoordinator",
    "DebugSession",
    "DebuggerBackend",
    "DebuggerManagerThread",
    "Priority",
    "SessionState",
    "SessionTransitionError",
    "SocketDebuggerBackend",
    "SuspendHandle",
]
