"""samrunner - run and debug serverless functions locally through the SAM CLI."""

from samrunner.errors import DebugAttachError
from samrunner.errors import ExecutionTimeoutError
from samrunner.errors import LaunchError
from samrunner.execution import LocalInvokeExecutor
from samrunner.execution import ResultFuture
from samrunner.models import ExecutionMode
from samrunner.models import ExecutionResult
from samrunner.models import RunConfiguration
from samrunner.models import RunRequest

__all__ = [
    "DebugAttachError",
    "ExecutionMode",
    "ExecutionResult",
    "ExecutionTimeoutError",
    "LaunchError",
    "LocalInvokeExecutor",
    "ResultFuture",
    "RunConfiguration",
    "RunRequest",
    "__version__",
]
__version__ = "0.1.0"
