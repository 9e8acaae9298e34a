"""Incremental collection of process output."""

from __future__ import annotations

import threading

from samrunner.models import OutputAggregate
from samrunner.models import OutputChunk
from samrunner.models import StreamKind


class OutputAggregator:
    """Collects output chunks in arrival order until the process exits.

    Chunk boundaries are kept exactly as delivered; nothing is split into
    lines or merged.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chunks: list[OutputChunk] = []
        self._aggregate: OutputAggregate | None = None

    @property
    def is_finalized(self) -> bool:
        with self._lock:
            return self._aggregate is not None

    def on_chunk(self, stream: StreamKind, text: str) -> None:
        if not text:
            return
        with self._lock:
            if self._aggregate is not None:
                msg = f"Output received on {stream.value} after the aggregate was finalized"
                raise RuntimeError(msg)
            self._chunks.append(OutputChunk(stream, text))

    def finalize(self) -> OutputAggregate:
        """Freeze the collected output. Later calls return the same aggregate."""
        with self._lock:
            if self._aggregate is None:
                self._aggregate = OutputAggregate(tuple(self._chunks))
                self._chunks = []
            return self._aggregate
