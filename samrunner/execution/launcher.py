"""Starting ``sam local invoke`` and observing the process it creates.

The launcher resolves the CLI, writes the invocation workspace and spawns the
process. The returned :class:`ProcessHandle` drains stdout and stderr on
reader threads and publishes everything it sees on a single queue:
``OutputEvent`` for each chunk and one final ``TerminationEvent``. The
termination event is posted after the process has exited and both readers
have reached EOF, so a consumer that stops at it has seen every chunk.

The CLI runs in its own session. Killing the handle kills the whole process
group, including children that inherited the output pipes. If a reader is
still blocked once the CLI has exited, the leftover group is killed and the
readers get one more bounded wait before the handle is released anyway.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import queue
import shutil
import signal
import subprocess
import threading
import time
from typing import IO
from typing import TYPE_CHECKING
from typing import Union

from samrunner.config import get_settings
from samrunner.errors import LaunchError
from samrunner.execution.template import InvocationWorkspace
from samrunner.models import OutputChunk
from samrunner.models import StreamKind

if TYPE_CHECKING:
    from samrunner.config import SamSettings
    from samrunner.models import RunConfiguration

logger = logging.getLogger(__name__)

# Seconds to wait for the readers to reach EOF once the CLI has exited.
READER_DRAIN_SECONDS = 2.0


@dataclass(frozen=True)
class OutputEvent:
    chunk: OutputChunk


@dataclass(frozen=True)
class TerminationEvent:
    exit_code: int


ProcessEvent = Union[OutputEvent, TerminationEvent]


class ProcessHandle:
    """The live CLI process and the threads that watch it."""

    def __init__(
        self,
        process: subprocess.Popen[str],
        command: list[str],
        workspace: InvocationWorkspace | None = None,
    ) -> None:
        self._process = process
        self.command = command
        self._workspace = workspace
        self.events: queue.Queue[ProcessEvent] = queue.Queue()
        self._readers: list[threading.Thread] = []
        self._waiter: threading.Thread | None = None
        self._exit_code: int | None = None
        self._terminated = threading.Event()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def is_running(self) -> bool:
        return not self._terminated.is_set()

    def start(self) -> None:
        """Start the reader and waiter threads. Idempotent."""
        if self._waiter is not None:
            return
        for stream, kind in (
            (self._process.stdout, StreamKind.STDOUT),
            (self._process.stderr, StreamKind.STDERR),
        ):
            if stream is None:
                continue
            reader = threading.Thread(
                target=self._read_output,
                args=(stream, kind),
                name=f"samrunner-{kind.value}-{self.pid}",
                daemon=True,
            )
            reader.start()
            self._readers.append(reader)

        self._waiter = threading.Thread(
            target=self._wait_for_exit,
            name=f"samrunner-waiter-{self.pid}",
            daemon=True,
        )
        self._waiter.start()

    def _read_output(self, stream: IO[str], kind: StreamKind) -> None:
        try:
            for text in iter(stream.readline, ""):
                logger.debug("SAM CLI [%s]: %s", kind.value, text.rstrip("\n"))
                self.events.put(OutputEvent(OutputChunk(kind, text)))
        except (OSError, ValueError):
            logger.exception("Error reading %s", kind.value)
        finally:
            # A blocked reader owns the buffer lock, so only the reader closes its pipe.
            try:
                stream.close()
            except OSError:
                logger.debug("Failed to close %s pipe", kind.value, exc_info=True)

    def _join_readers(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        for reader in self._readers:
            reader.join(max(0.0, deadline - time.monotonic()))
        return not any(reader.is_alive() for reader in self._readers)

    def _wait_for_exit(self) -> None:
        try:
            exit_code = self._process.wait()
            if not self._join_readers(READER_DRAIN_SECONDS):
                logger.warning(
                    "SAM CLI process %s exited but its output pipes are still open; "
                    "killing its remaining child processes",
                    self.pid,
                )
                self._kill_group()
                if not self._join_readers(READER_DRAIN_SECONDS):
                    logger.warning("Abandoning output readers of SAM CLI process %s", self.pid)
        finally:
            self._release()

        self._exit_code = exit_code
        logger.info("SAM CLI process %s exited with code %s", self.pid, exit_code)
        self._terminated.set()
        self.events.put(TerminationEvent(exit_code))

    def _release(self) -> None:
        if self._process.stdin is not None:
            try:
                self._process.stdin.close()
            except OSError:
                logger.debug("Failed to close process stdin", exc_info=True)
        if self._workspace is not None:
            self._workspace.cleanup()

    def _kill_group(self) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(self.pid, signal.SIGKILL)
            else:
                self._process.kill()
        except ProcessLookupError:
            pass
        except OSError:
            logger.warning("Could not kill process group %s", self.pid, exc_info=True)

    def terminate(self) -> None:
        """Kill the process and every process it started."""
        if self._terminated.is_set():
            return
        logger.info("Terminating SAM CLI process group %s", self.pid)
        self._kill_group()

    def wait(self, timeout: float | None = None) -> bool:
        """Wait until the termination event has been posted."""
        return self._terminated.wait(timeout)


class ProcessLauncher:
    """Turns a run configuration into a running ``sam local invoke`` process."""

    def __init__(self, settings: SamSettings | None = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> SamSettings:
        return self._settings or get_settings()

    def resolve_executable(self, configuration: RunConfiguration) -> str:
        """Return an absolute path to the CLI or raise ``LaunchError``."""
        candidate = configuration.executable_path or self.settings.resolve_executable_path()

        if os.sep in candidate or (os.altsep and os.altsep in candidate):
            path = Path(candidate)
            if not path.is_file():
                msg = f"SAM CLI executable not found: {candidate}"
                raise LaunchError(msg, executable=candidate)
            if not os.access(path, os.X_OK):
                msg = f"SAM CLI executable is not runnable: {candidate}"
                raise LaunchError(msg, executable=candidate)
            return str(path)

        found = shutil.which(candidate)
        if found is None:
            msg = f"SAM CLI executable '{candidate}' was not found on PATH"
            raise LaunchError(msg, executable=candidate)
        return found

    def build_command(
        self,
        configuration: RunConfiguration,
        workspace: InvocationWorkspace,
        debug_port: int | None = None,
        executable: str | None = None,
    ) -> list[str]:
        command = [
            executable or self.resolve_executable(configuration),
            "local",
            "invoke",
            configuration.logical_id,
            "--template",
            str(workspace.template_path),
            "--event",
            str(workspace.event_path),
        ]
        if debug_port is not None:
            command.extend(["--debug-port", str(debug_port)])
        return command

    def _build_environment(self, configuration: RunConfiguration) -> dict[str, str] | None:
        if not configuration.process_environment:
            return None
        environment = dict(os.environ)
        environment.update(configuration.process_environment)
        return environment

    def launch(
        self,
        configuration: RunConfiguration,
        debug_port: int | None = None,
    ) -> ProcessHandle:
        """Spawn the CLI and start watching it.

        Raises:
            LaunchError: If the executable cannot be resolved or started.
        """
        configuration.validate()
        executable = self.resolve_executable(configuration)

        try:
            workspace = InvocationWorkspace.create(configuration)
        except OSError as e:
            msg = "Could not write invocation files"
            raise LaunchError(msg, executable=executable, cause=e) from e

        command = self.build_command(configuration, workspace, debug_port, executable)
        logger.info("Launching: %s", " ".join(command))

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                cwd=configuration.working_directory,
                env=self._build_environment(configuration),
                start_new_session=True,
            )
        except OSError as e:
            workspace.cleanup()
            msg = f"Failed to start SAM CLI: {executable}"
            raise LaunchError(msg, executable=executable, cause=e) from e

        handle = ProcessHandle(process, command, workspace)
        handle.start()
        return handle
