"""Value types shared by the launcher, aggregator, coordinator and callers."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from enum import Enum
from pathlib import Path

from samrunner.errors import ConfigurationError

DEFAULT_RUNTIME = "python3.12"
DEFAULT_LOGICAL_ID = "Function"


class ExecutionMode(Enum):
    """How the function is invoked."""

    RUN = "run"
    DEBUG = "debug"


@dataclass(frozen=True)
class RunRequest:
    """What to execute and how.

    ``input`` is passed to the CLI verbatim; it is never parsed here.
    """

    handler: str
    input: str
    mode: ExecutionMode = ExecutionMode.RUN

    def with_mode(self, mode: ExecutionMode) -> RunRequest:
        if mode is self.mode:
            return self
        return replace(self, mode=mode)


@dataclass
class RunConfiguration:
    """A run request plus everything needed to start the CLI for it."""

    request: RunRequest
    executable_path: str | None = None
    working_directory: str | None = None
    code_uri: str | None = None
    runtime: str = DEFAULT_RUNTIME
    logical_id: str = DEFAULT_LOGICAL_ID
    environment_variables: dict[str, str] = field(default_factory=dict)
    process_environment: dict[str, str] = field(default_factory=dict)
    function_timeout_seconds: int = 900
    memory_size: int = 128

    @property
    def resolved_code_uri(self) -> str:
        return str(Path(self.code_uri or self.working_directory or ".").resolve())

    def validate(self) -> None:
        if not self.request.handler.strip():
            raise ConfigurationError("Handler is required", config_key="handler")
        if not Path(self.resolved_code_uri).is_dir():
            raise ConfigurationError(
                f"Code directory does not exist: {self.resolved_code_uri}",
                config_key="code_uri",
            )
        if self.working_directory and not Path(self.working_directory).is_dir():
            raise ConfigurationError(
                f"Working directory does not exist: {self.working_directory}",
                config_key="working_directory",
            )
        if not self.logical_id.isalnum():
            raise ConfigurationError(
                "Logical id must be alphanumeric",
                config_key="logical_id",
                details={"logical_id": self.logical_id},
            )


@dataclass(frozen=True)
class LineBreakpoint:
    """A source line the debugger should stop on."""

    path: str
    line: int
    condition: str | None = None


class StreamKind(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class OutputChunk:
    stream: StreamKind
    text: str


@dataclass(frozen=True)
class OutputAggregate:
    """Frozen, ordered view of everything the process wrote."""

    chunks: tuple[OutputChunk, ...] = ()

    def text(self, stream: StreamKind) -> str:
        return "".join(chunk.text for chunk in self.chunks if chunk.stream is stream)

    @property
    def stdout(self) -> str:
        return self.text(StreamKind.STDOUT)

    @property
    def stderr(self) -> str:
        return self.text(StreamKind.STDERR)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one run: exit status plus captured output."""

    exit_code: int
    stdout: str
    stderr: str
    output: OutputAggregate = field(default_factory=OutputAggregate, compare=False)

    @classmethod
    def from_aggregate(cls, exit_code: int, aggregate: OutputAggregate) -> ExecutionResult:
        return cls(
            exit_code=exit_code,
            stdout=aggregate.stdout,
            stderr=aggregate.stderr,
            output=aggregate,
        )
