"""End-to-end runs through a real subprocess speaking the SAM CLI contract."""

from __future__ import annotations

import sys
import time

import pytest

from samrunner.config import settings_context
from samrunner.debug import SessionState
from samrunner.errors import DebugAttachError
from samrunner.errors import ExecutionTimeoutError
from samrunner.errors import LaunchError
from samrunner.execution import LocalInvokeExecutor
from samrunner.models import ExecutionMode

pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX fake SAM CLI")

UPPERCASE = "lambda_handler.handle_request"
HELLO = '"Hello World"'


def _line_of(path, text: str) -> int:
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if text in line:
            return number
    raise AssertionError(f"{text!r} not found in {path}")


def _shell_cli(tmp_path, body: str) -> str:
    path = tmp_path / "sam-script"
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(0o755)
    return str(path)


def test_run_mode_returns_uppercased_output(make_configuration):
    future = LocalInvokeExecutor().execute(make_configuration(UPPERCASE, HELLO), ExecutionMode.RUN)

    result = future.result(60)

    assert result.exit_code == 0, result.stderr
    assert "HELLO WORLD" in result.stdout
    assert "START RequestId" in result.stderr
    assert future.debug_session is None


@pytest.mark.asyncio
async def test_run_mode_result_can_be_awaited(make_configuration):
    future = LocalInvokeExecutor().execute(make_configuration(UPPERCASE, HELLO))
    result = await future.wait(60)
    assert result.exit_code == 0
    assert "HELLO WORLD" in result.stdout


def test_debug_mode_hits_breakpoint_and_resumes(make_configuration, handlers_dir):
    source = handlers_dir / "lambda_handler.py"
    line = _line_of(source, "return event.upper()")
    executor = LocalInvokeExecutor()
    assert executor.breakpoints.add_line_breakpoint(source, line) is not None

    future = executor.execute(make_configuration(UPPERCASE, HELLO), ExecutionMode.DEBUG)
    result = future.result(60)

    assert result.exit_code == 0, result.stderr
    assert "HELLO WORLD" in result.stdout
    session = future.debug_session
    assert session is not None
    assert session.breakpoint_hit
    assert [(hit.path, hit.line) for hit in session.hits] == [(str(source), line)]
    assert session.state is SessionState.TERMINAL


def test_debug_mode_without_breakpoints_runs_to_completion(make_configuration):
    configuration = make_configuration(UPPERCASE, HELLO)
    future = LocalInvokeExecutor().execute(configuration, ExecutionMode.DEBUG)
    result = future.result(60)
    assert "HELLO WORLD" in result.stdout
    assert not future.debug_session.breakpoint_hit


def test_debug_mode_from_request(make_configuration, handlers_dir):
    source = handlers_dir / "lambda_handler.py"
    executor = LocalInvokeExecutor()
    executor.breakpoints.add_line_breakpoint(source, _line_of(source, "return"))
    configuration = make_configuration(UPPERCASE, HELLO)
    configuration.request = configuration.request.with_mode(ExecutionMode.DEBUG)

    future = executor.execute(configuration)

    assert future.result(60).exit_code == 0
    assert future.debug_session.breakpoint_hit


def test_missing_cli_raises_launch_error(make_configuration, tmp_path):
    executor = LocalInvokeExecutor()
    configuration = make_configuration(UPPERCASE, HELLO, executable_path=str(tmp_path / "nope"))
    with pytest.raises(LaunchError):
        executor.execute(configuration)
    with pytest.raises(LaunchError):
        executor.execute(configuration, ExecutionMode.DEBUG)


def test_unknown_cli_name_raises_launch_error(make_configuration, monkeypatch, tmp_path):
    monkeypatch.setenv("PATH", str(tmp_path))
    configuration = make_configuration(UPPERCASE, HELLO, executable_path="sam-not-installed")
    with pytest.raises(LaunchError) as excinfo:
        LocalInvokeExecutor().execute(configuration)
    assert excinfo.value.executable == "sam-not-installed"


def test_failing_handler_is_a_result_not_an_error(make_configuration):
    result = LocalInvokeExecutor().execute(
        make_configuration("failing_handler.handle_request", '"boom"')
    ).result(60)

    assert result.exit_code == 1
    assert "ValueError" in result.stdout
    assert "Traceback" in result.stderr


def test_output_keeps_per_stream_order(make_configuration):
    result = LocalInvokeExecutor().run(
        make_configuration("chatty_handler.handle_request", '{"lines": 50}'), timeout=60
    )

    stdout_lines = result.stdout.splitlines()
    assert stdout_lines[:50] == [f"line {i}" for i in range(50)]
    assert stdout_lines[-1] == '"done"'
    stderr_lines = [line for line in result.stderr.splitlines() if line.startswith("err ")]
    assert stderr_lines == [f"err {i}" for i in range(50)]


def test_result_is_idempotent(make_configuration):
    future = LocalInvokeExecutor().execute(make_configuration(UPPERCASE, HELLO))
    first = future.result(60)
    assert future.result(0) is first


def test_result_timeout_leaves_process_running(make_configuration):
    future = LocalInvokeExecutor().execute(
        make_configuration("slow_handler.handle_request", '{"seconds": 1.5}')
    )

    start = time.monotonic()
    with pytest.raises(ExecutionTimeoutError):
        future.result(0.2)
    assert time.monotonic() - start < 1.2

    result = future.result(60)
    assert result.exit_code == 0
    assert '"slept": 1.5' in result.stdout


def test_run_terminates_process_on_timeout(make_configuration, monkeypatch):
    executor = LocalInvokeExecutor()
    futures = []
    execute = executor.execute

    def recording_execute(*args, **kwargs):
        futures.append(execute(*args, **kwargs))
        return futures[-1]

    monkeypatch.setattr(executor, "execute", recording_execute)

    start = time.monotonic()
    with pytest.raises(ExecutionTimeoutError):
        executor.run(
            make_configuration("slow_handler.handle_request", '{"seconds": 30}'), timeout=0.5
        )
    assert time.monotonic() - start < 5

    killed = futures[0].result(10)
    assert killed.exit_code != 0


def test_run_uses_default_timeout_from_settings(make_configuration):
    with settings_context(default_timeout_seconds=0.3):
        with pytest.raises(ExecutionTimeoutError) as excinfo:
            LocalInvokeExecutor().run(
                make_configuration("slow_handler.handle_request", '{"seconds": 30}')
            )
    assert excinfo.value.timeout_seconds == 0.3


def test_debugger_that_never_attaches_fails_the_run(make_configuration, tmp_path):
    cli = _shell_cli(tmp_path, "exec sleep 30\n")
    configuration = make_configuration(UPPERCASE, HELLO, executable_path=cli)

    with settings_context(debug_attach_grace_seconds=0.3):
        future = LocalInvokeExecutor().execute(configuration, ExecutionMode.DEBUG)
        with pytest.raises(DebugAttachError):
            future.result(10)

    assert future.debug_session.state is SessionState.TERMINAL


def test_process_exit_before_attach_still_produces_result(make_configuration, tmp_path):
    cli = _shell_cli(tmp_path, "echo no debugger here\nexit 0\n")
    configuration = make_configuration(UPPERCASE, HELLO, executable_path=cli)

    future = LocalInvokeExecutor().execute(configuration, ExecutionMode.DEBUG)
    result = future.result(10)

    assert result.exit_code == 0
    assert result.stdout == "no debugger here\n"
    assert not future.debug_session.breakpoint_hit
    assert future.debug_session.state is SessionState.TERMINAL


def test_run_timeout_releases_cli_that_forks_children(make_configuration, monkeypatch, tmp_path):
    cli = _shell_cli(tmp_path, "echo started\nsleep 20\n")
    configuration = make_configuration(UPPERCASE, HELLO, executable_path=cli)
    executor = LocalInvokeExecutor()
    futures = []
    execute = executor.execute

    def recording_execute(*args, **kwargs):
        futures.append(execute(*args, **kwargs))
        return futures[-1]

    monkeypatch.setattr(executor, "execute", recording_execute)

    with pytest.raises(ExecutionTimeoutError):
        executor.run(configuration, timeout=0.5)

    killed = futures[0].result(5)
    assert killed.exit_code != 0
    assert killed.stdout == "started\n"
