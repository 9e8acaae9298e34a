"""Settings for the local invoke orchestrator.

Holds everything that is resolved from the host environment rather than from
a single run: where the SAM CLI lives, how long to wait for the debugger to
attach and the default result timeout.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Literal

from samrunner.errors import ConfigurationError

EXECUTABLE_ENV_VAR = "SAM_CLI_EXEC"
DEFAULT_EXECUTABLE = "sam"


@dataclass
class SamSettings:
    """Process-wide settings used by every invocation."""

    executable_path: str | None = None
    debug_attach_grace_seconds: float = 60.0
    default_timeout_seconds: float = 180.0
    debug_host: str = "127.0.0.1"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @classmethod
    def from_environment(cls) -> SamSettings:
        """Create settings with the executable taken from ``SAM_CLI_EXEC``."""
        return cls(executable_path=os.environ.get(EXECUTABLE_ENV_VAR) or None)

    def resolve_executable_path(self) -> str:
        """Return the configured executable, the env override or ``sam``."""
        if self.executable_path:
            return self.executable_path
        return os.environ.get(EXECUTABLE_ENV_VAR) or DEFAULT_EXECUTABLE

    def validate(self) -> None:
        """Validate settings and raise errors for invalid values."""
        if self.debug_attach_grace_seconds <= 0:
            raise ConfigurationError(
                "Debug attach grace period must be positive",
                config_key="debug_attach_grace_seconds",
                details={"value": self.debug_attach_grace_seconds},
            )
        if self.default_timeout_seconds <= 0:
            raise ConfigurationError(
                "Default timeout must be positive",
                config_key="default_timeout_seconds",
                details={"value": self.default_timeout_seconds},
            )
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                config_key="log_level",
            )


DEFAULT_SETTINGS = SamSettings()
