"""Binary framing for the debug connection."""

from samrunner.ipc.frames import HEADER_SIZE
from samrunner.ipc.frames import KIND_COMMAND
from samrunner.ipc.frames import KIND_EVENT
from samrunner.ipc.frames import MAGIC
from samrunner.ipc.frames import VERSION
from samrunner.ipc.frames import pack_frame
from samrunner.ipc.frames import read_exact
from samrunner.ipc.frames import read_message
from samrunner.ipc.frames import unpack_header
from samrunner.ipc.frames import write_message

__all__ = [
    "HEADER_SIZE",
    "KIND_COMMAND",
    "KIND_EVENT",
    "MAGIC",
    "VERSION",
    "pack_frame",
    "read_exact",
    "read_message",
    "unpack_header",
    "write_message",
]
