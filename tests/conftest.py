from __future__ import annotations

import logging
from pathlib import Path
import sys

import pytest

from samrunner.config import reset_settings
from samrunner.models import RunConfiguration
from samrunner.models import RunRequest

logger = logging.getLogger(__name__)

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
FIXTURES_DIR = TESTS_DIR / "fixtures"
HANDLERS_DIR = FIXTURES_DIR / "handlers"
FAKE_SAM_CLI = FIXTURES_DIR / "fake_sam_cli.py"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Each test starts from default settings and no SAM_CLI_EXEC override."""
    monkeypatch.delenv("SAM_CLI_EXEC", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def handlers_dir() -> Path:
    return HANDLERS_DIR


@pytest.fixture
def fake_sam_cli(tmp_path) -> str:
    """Executable wrapper around the fake CLI, usable as the SAM CLI path."""
    if sys.platform.startswith("win"):
        pytest.skip("fake SAM CLI wrapper is a POSIX shell script")

    script = tmp_path / "sam"
    script.write_text(
        "#!/bin/sh\n"
        f'PYTHONPATH="{PROJECT_ROOT}${{PYTHONPATH:+:$PYTHONPATH}}" '
        f'exec "{sys.executable}" "{FAKE_SAM_CLI}" "$@"\n',
        encoding="utf-8",
    )
    script.chmod(0o755)
    return str(script)


@pytest.fixture
def make_configuration(fake_sam_cli, handlers_dir):
    """Build a configuration for one of the handler fixtures."""

    def _make(handler: str, payload: str, **kwargs) -> RunConfiguration:
        kwargs.setdefault("executable_path", fake_sam_cli)
        kwargs.setdefault("code_uri", str(handlers_dir))
        return RunConfiguration(request=RunRequest(handler=handler, input=payload), **kwargs)

    return _make
