"""Code that runs inside the debugged function process."""

from samrunner.debuggee.agent import DebuggeeConnection
from samrunner.debuggee.agent import HandlerDebugger
from samrunner.debuggee.agent import run_handler

__all__ = [
    "DebuggeeConnection",
    "HandlerDebugger",
    "run_handler",
]
