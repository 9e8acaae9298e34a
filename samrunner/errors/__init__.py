"""Error handling for samrunner."""

from samrunner.errors.samrunner_errors import ConfigurationError
from samrunner.errors.samrunner_errors import DebugAttachError
from samrunner.errors.samrunner_errors import DebugProtocolError
from samrunner.errors.samrunner_errors import ExecutionTimeoutError
from samrunner.errors.samrunner_errors import LaunchError
from samrunner.errors.samrunner_errors import SamRunnerError

__all__ = [
    "ConfigurationError",
    "DebugAttachError",
    "DebugProtocolError",
    "ExecutionTimeoutError",
    "LaunchError",
    "SamRunnerError",
]
