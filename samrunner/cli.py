"""Command line front end: ``python -m samrunner invoke HANDLER``."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
import sys

from samrunner.config import get_settings
from samrunner.errors import ConfigurationError
from samrunner.errors import DebugAttachError
from samrunner.errors import ExecutionTimeoutError
from samrunner.errors import LaunchError
from samrunner.execution import LocalInvokeExecutor
from samrunner.models import DEFAULT_RUNTIME
from samrunner.models import ExecutionMode
from samrunner.models import RunConfiguration
from samrunner.models import RunRequest

logger = logging.getLogger(__name__)

EXIT_ORCHESTRATION_ERROR = 2
EXIT_TIMEOUT = 124

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _parse_breakpoint(value: str) -> tuple[str, int]:
    path, sep, line = value.rpartition(":")
    if not sep or not path or not line.isdigit() or int(line) < 1:
        msg = f"expected FILE:LINE, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return path, int(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="samrunner", description="Run or debug a function through the SAM CLI"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    invoke = subparsers.add_parser("invoke", help="Invoke a function handler locally")
    invoke.add_argument("handler", help="Handler reference, for example app.handler")
    invoke.add_argument(
        "--code-uri",
        type=str,
        default=None,
        help="Directory containing the function code (default: current directory)",
    )
    payload = invoke.add_mutually_exclusive_group()
    payload.add_argument("--input", type=str, help="Input payload passed verbatim")
    payload.add_argument("--input-file", type=str, help="File holding the input payload")
    invoke.add_argument(
        "--runtime",
        type=str,
        default=DEFAULT_RUNTIME,
        help=f"Function runtime (default: {DEFAULT_RUNTIME})",
    )
    invoke.add_argument("--debug", action="store_true", help="Attach the debugger")
    invoke.add_argument(
        "--breakpoint",
        type=_parse_breakpoint,
        action="append",
        default=[],
        metavar="FILE:LINE",
        help="Line breakpoint for debug runs (repeatable)",
    )
    invoke.add_argument("--timeout", type=float, help="Seconds to wait for the result")
    invoke.add_argument("--executable", type=str, help="Path to the SAM CLI")
    invoke.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=LOG_LEVELS,
        help="Log level (default: from settings)",
    )
    return parser


def _read_payload(args: argparse.Namespace) -> str:
    if args.input_file:
        return Path(args.input_file).read_text(encoding="utf-8")
    if args.input is not None:
        return args.input
    return "{}"


def _exit_status(exit_code: int) -> int:
    # Negative codes mean the process was killed by a signal.
    if exit_code < 0:
        return 128 - exit_code
    return exit_code


def invoke(args: argparse.Namespace) -> int:
    executor = LocalInvokeExecutor()
    for path, line in args.breakpoint:
        if executor.breakpoints.add_line_breakpoint(path, line) is None:
            logger.warning("Ignoring breakpoint %s:%d, no such line", path, line)

    try:
        payload = _read_payload(args)
    except OSError as e:
        print(f"samrunner: cannot read input file: {e}", file=sys.stderr)
        return EXIT_ORCHESTRATION_ERROR

    mode = ExecutionMode.DEBUG if args.debug else ExecutionMode.RUN
    configuration = RunConfiguration(
        request=RunRequest(handler=args.handler, input=payload, mode=mode),
        executable_path=args.executable,
        working_directory=os.getcwd(),
        code_uri=args.code_uri,
        runtime=args.runtime,
    )

    try:
        result = executor.run(configuration, timeout=args.timeout)
    except ExecutionTimeoutError as e:
        print(f"samrunner: {e}", file=sys.stderr)
        return EXIT_TIMEOUT
    except (ConfigurationError, LaunchError, DebugAttachError) as e:
        print(f"samrunner: {e}", file=sys.stderr)
        return EXIT_ORCHESTRATION_ERROR

    sys.stdout.write(result.stdout)
    sys.stdout.flush()
    sys.stderr.write(result.stderr)
    sys.stderr.flush()
    return _exit_status(result.exit_code)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = args.log_level or get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )

    if args.command == "invoke":
        return invoke(args)
    parser.error(f"unknown command {args.command}")
    return EXIT_ORCHESTRATION_ERROR
