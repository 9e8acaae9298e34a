"""Process launch, output capture and result delivery."""

from samrunner.execution.executor import LocalInvokeExecutor
from samrunner.execution.launcher import OutputEvent
from samrunner.execution.launcher import ProcessHandle
from samrunner.execution.launcher import ProcessLauncher
from samrunner.execution.launcher import TerminationEvent
from samrunner.execution.output import OutputAggregator
from samrunner.execution.result_future import ResultFuture
from samrunner.execution.template import InvocationWorkspace
from samrunner.execution.template import build_template

__all__ = [
    "InvocationWorkspace",
    "LocalInvokeExecutor",
    "OutputAggregator",
    "OutputEvent",
    "ProcessHandle",
    "ProcessLauncher",
    "ResultFuture",
    "TerminationEvent",
    "build_template",
]
