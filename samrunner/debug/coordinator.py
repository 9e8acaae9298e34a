"""Debug attach coordination for a single debug-mode run.

The coordinator reacts to debugger backend events on the debugger manager
thread:

    IDLE --attached--> ATTACHED --paused--> SUSPENDED --continue sent--> ATTACHED
    ATTACHED/SUSPENDED --detached or process exit--> TERMINAL

Every pause is recorded on the :class:`DebugSession` before the resume is
scheduled, and the resume runs at ``Priority.LOWEST`` so pending session
bookkeeping goes first. The session stays SUSPENDED until the resume task
has actually sent ``continue``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
import logging
import threading
from typing import TYPE_CHECKING
from typing import Callable
from typing import ClassVar

from samrunner.debug.backend import AttachFailed
from samrunner.debug.backend import BreakpointsVerified
from samrunner.debug.backend import ExecutionPaused
from samrunner.debug.backend import SessionAttached
from samrunner.debug.backend import SessionDetached
from samrunner.debug.manager_thread import Priority

if TYPE_CHECKING:
    from samrunner.debug.backend import DebuggerBackend
    from samrunner.debug.backend import DebuggerEvent
    from samrunner.debug.backend import SuspendHandle
    from samrunner.errors import DebugAttachError
    from samrunner.models import LineBreakpoint

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    ATTACHED = "attached"
    SUSPENDED = "suspended"
    TERMINAL = "terminal"


class SessionTransitionError(Exception):
    """Raised when an invalid session state transition is attempted."""

    def __init__(self, from_state: SessionState, to_state: SessionState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid session transition: {from_state.value} -> {to_state.value}")


@dataclass(frozen=True)
class BreakpointHit:
    suspend_id: int
    path: str | None
    line: int | None


class DebugSession:
    """State of one debug run, observable from any thread."""

    _VALID_TRANSITIONS: ClassVar[dict[SessionState, set[SessionState]]] = {
        SessionState.IDLE: {SessionState.ATTACHED, SessionState.TERMINAL},
        SessionState.ATTACHED: {SessionState.SUSPENDED, SessionState.TERMINAL},
        SessionState.SUSPENDED: {SessionState.ATTACHED, SessionState.TERMINAL},
        SessionState.TERMINAL: set(),
    }

    def __init__(self, breakpoints: frozenset[LineBreakpoint] = frozenset()) -> None:
        self.breakpoints = breakpoints
        self._state = SessionState.IDLE
        self._hits: list[BreakpointHit] = []
        self._breakpoint_hit = threading.Event()
        self._changed = threading.Condition()

    @property
    def state(self) -> SessionState:
        with self._changed:
            return self._state

    @property
    def breakpoint_hit(self) -> bool:
        return self._breakpoint_hit.is_set()

    @property
    def hits(self) -> tuple[BreakpointHit, ...]:
        with self._changed:
            return tuple(self._hits)

    def transition_to(self, new_state: SessionState) -> None:
        with self._changed:
            if new_state not in self._VALID_TRANSITIONS[self._state]:
                raise SessionTransitionError(self._state, new_state)
            logger.debug("Debug session: %s -> %s", self._state.value, new_state.value)
            self._state = new_state
            self._changed.notify_all()

    def mark_terminal(self) -> bool:
        """Move to TERMINAL unless already there."""
        with self._changed:
            if self._state is SessionState.TERMINAL:
                return False
            self.transition_to(SessionState.TERMINAL)
            return True

    def transition_from(self, expected: SessionState, new_state: SessionState) -> bool:
        """Move to ``new_state`` only if the session is still in ``expected``."""
        with self._changed:
            if self._state is not expected:
                return False
            self.transition_to(new_state)
            return True

    def record_hit(self, handle: SuspendHandle) -> None:
        with self._changed:
            self._hits.append(BreakpointHit(handle.suspend_id, handle.path, handle.line))
            self._breakpoint_hit.set()
            self._changed.notify_all()

    def wait_for_breakpoint(self, timeout: float | None = None) -> bool:
        return self._breakpoint_hit.wait(timeout)

    def wait_for_state(self, state: SessionState, timeout: float | None = None) -> bool:
        with self._changed:
            return self._changed.wait_for(lambda: self._state is state, timeout)


class DebugAttachCoordinator:
    """Bridges backend session events to the run's control flow.

    ``on_attach_failed`` is called (on the manager thread) at most once, when
    the backend reports that the debuggee never attached.
    """

    def __init__(
        self,
        session: DebugSession,
        backend: DebuggerBackend,
        on_attach_failed: Callable[[DebugAttachError], None] | None = None,
    ) -> None:
        self.session = session
        self._backend = backend
        self._on_attach_failed = on_attach_failed
        self._started = False

    def start(self) -> None:
        """Start the one and only attach attempt."""
        if self._started:
            msg = "Attach is attempted once per run"
            raise RuntimeError(msg)
        self._started = True
        self._backend.start(self.dispatch)

    def dispatch(self, event: DebuggerEvent) -> None:
        if isinstance(event, SessionAttached):
            self._on_session_attached(event)
        elif isinstance(event, ExecutionPaused):
            self._on_paused(event.handle)
        elif isinstance(event, BreakpointsVerified):
            self._on_breakpoints_verified(event)
        elif isinstance(event, SessionDetached):
            if self.session.mark_terminal():
                logger.info("Debug session ended: %s", event.reason)
        elif isinstance(event, AttachFailed):
            self._on_attach_error(event.error)

    def _on_session_attached(self, event: SessionAttached) -> None:
        if self.session.state is not SessionState.IDLE:
            logger.warning("Ignoring duplicate attach from pid %s", event.pid)
            return
        logger.info("Debugger attached to pid %s", event.pid)
        self.session.transition_to(SessionState.ATTACHED)

        by_path: dict[str, list[dict[str, object]]] = defaultdict(list)
        for bp in sorted(self.session.breakpoints, key=lambda b: (b.path, b.line)):
            spec: dict[str, object] = {"line": bp.line}
            if bp.condition:
                spec["condition"] = bp.condition
            by_path[bp.path].append(spec)
        for path, specs in by_path.items():
            self._backend.send_command("setBreakpoints", {"path": path, "breakpoints": specs})
        self._backend.send_command("configurationDone")

    def _on_paused(self, handle: SuspendHandle) -> None:
        if self.session.state is SessionState.TERMINAL:
            logger.warning("Pause %s arrived after the session ended", handle.suspend_id)
            return
        self.session.transition_from(SessionState.ATTACHED, SessionState.SUSPENDED)
        logger.info(
            "Breakpoint hit at %s:%s (suspend id %s)", handle.path, handle.line, handle.suspend_id
        )
        self.session.record_hit(handle)
        self._backend.resume(handle, Priority.LOWEST, on_resumed=self._on_resumed)

    def _on_resumed(self, handle: SuspendHandle) -> None:
        if self.session.transition_from(SessionState.SUSPENDED, SessionState.ATTACHED):
            logger.debug("Debuggee resumed from suspend point %s", handle.suspend_id)

    def _on_breakpoints_verified(self, event: BreakpointsVerified) -> None:
        for bp in event.breakpoints:
            if not bp.get("verified", False):
                logger.warning(
                    "Breakpoint %s:%s was not verified: %s",
                    event.path,
                    bp.get("line"),
                    bp.get("message", "unknown reason"),
                )

    def _on_attach_error(self, error: DebugAttachError) -> None:
        if self.session.state is not SessionState.IDLE:
            return
        self.session.mark_terminal()
        if self._on_attach_failed is not None:
            self._on_attach_failed(error)

    def process_terminated(self) -> None:
        """Called when the debuggee process has exited."""
        self.session.mark_terminal()
