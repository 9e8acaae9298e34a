"""BreakpointManager: the line breakpoints debug runs start with."""

from __future__ import annotations

import linecache
import logging
import os
import threading

from samrunner.models import LineBreakpoint

logger = logging.getLogger(__name__)


class BreakpointManager:
    """Thread-safe registry of line breakpoints.

    Each debug run takes a snapshot, so changes made while a run is active
    only affect later runs.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._breakpoints: dict[tuple[str, int], LineBreakpoint] = {}

    @staticmethod
    def _normalize(path: str | os.PathLike[str]) -> str:
        return os.path.abspath(os.fspath(path))

    def add_line_breakpoint(
        self,
        path: str | os.PathLike[str],
        line: int,
        condition: str | None = None,
    ) -> LineBreakpoint | None:
        """Register a breakpoint; ``None`` if the file has no such line."""
        normalized = self._normalize(path)
        line = int(line)
        linecache.checkcache(normalized)
        if line < 1 or not linecache.getline(normalized, line):
            logger.warning("Line %s:%s does not exist", normalized, line)
            return None

        bp = LineBreakpoint(normalized, line, condition)
        with self._lock:
            self._breakpoints[(normalized, line)] = bp
        return bp

    def remove_line_breakpoint(self, path: str | os.PathLike[str], line: int) -> bool:
        with self._lock:
            return self._breakpoints.pop((self._normalize(path), int(line)), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._breakpoints.clear()

    def snapshot(self) -> frozenset[LineBreakpoint]:
        with self._lock:
            return frozenset(self._breakpoints.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakpoints)
