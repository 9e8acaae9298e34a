from __future__ import annotations

import json
import struct
from typing import Any
from typing import BinaryIO

from samrunner.errors import DebugProtocolError

MAGIC = b"SR"
VERSION = 1

KIND_EVENT = 1
KIND_COMMAND = 2

HEADER_SIZE = 8


def pack_frame(kind: int, payload: bytes) -> bytes:
    """Pack a binary frame: MAGIC(2) + VER(1) + KIND(1) + LEN(4 BE) + PAYLOAD.

    kind: 1 = event (debuggee -> orchestrator), 2 = command (orchestrator -> debuggee)
    """
    header = MAGIC + bytes([VERSION, kind]) + struct.pack(">I", len(payload))
    return header + payload


def unpack_header(buf: bytes) -> tuple[int, int]:
    """Return (kind, length) from a validated header."""
    if len(buf) != HEADER_SIZE:
        msg = "invalid header size"
        raise DebugProtocolError(msg)
    if buf[:2] != MAGIC:
        msg = "bad magic"
        raise DebugProtocolError(msg)
    ver = buf[2]
    if ver != VERSION:
        msg = "unsupported version"
        raise DebugProtocolError(msg, details={"version": ver})
    kind = buf[3]
    if kind not in (KIND_EVENT, KIND_COMMAND):
        msg = "unknown frame kind"
        raise DebugProtocolError(msg, frame_kind=kind)
    length = struct.unpack(">I", buf[4:8])[0]
    return kind, int(length)


def read_exact(stream: BinaryIO, n: int) -> bytes:
    """Read exactly n bytes; return b"" on EOF before any byte was read."""
    chunks = bytearray()
    while len(chunks) < n:
        chunk = stream.read(n - len(chunks))
        if not chunk:
            if chunks:
                msg = "connection closed mid-frame"
                raise DebugProtocolError(msg)
            return b""
        chunks.extend(chunk)
    return bytes(chunks)


def read_message(stream: BinaryIO) -> tuple[int, dict[str, Any]] | None:
    """Read one frame and decode its JSON payload; ``None`` on clean EOF."""
    header = read_exact(stream, HEADER_SIZE)
    if not header:
        return None
    kind, length = unpack_header(header)
    payload = read_exact(stream, length) if length else b""
    if length and not payload:
        msg = "connection closed mid-frame"
        raise DebugProtocolError(msg, frame_kind=kind)
    try:
        message = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        msg = "frame payload is not valid JSON"
        raise DebugProtocolError(msg, frame_kind=kind, cause=e) from e
    if not isinstance(message, dict):
        msg = "frame payload must be a JSON object"
        raise DebugProtocolError(msg, frame_kind=kind)
    return kind, message


def write_message(stream: BinaryIO, kind: int, message: dict[str, Any]) -> None:
    stream.write(pack_frame(kind, json.dumps(message).encode("utf-8")))
    stream.flush()
