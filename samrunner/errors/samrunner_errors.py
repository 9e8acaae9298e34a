"""Error hierarchy for the local invoke orchestrator.

Every failure that ends a run is one of the classes below. A nonzero exit
code of the invoked function is not an error at this layer; it is reported
through ``ExecutionResult.exit_code``.
"""

from __future__ import annotations

from typing import Any


class SamRunnerError(Exception):
    """Base exception for all samrunner errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary for reporting."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause!s})"
        return self.message


class ConfigurationError(SamRunnerError):
    """Raised when settings or a run configuration are invalid."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, error_code="ConfigurationError", details=details, **kwargs)
        self.config_key = config_key


class LaunchError(SamRunnerError):
    """Raised when the external CLI cannot be resolved or spawned."""

    def __init__(
        self,
        message: str,
        *,
        executable: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if executable:
            details["executable"] = executable
        super().__init__(message, error_code="LaunchError", details=details, **kwargs)
        self.executable = executable


class DebugAttachError(SamRunnerError):
    """Raised when the debugger does not attach within the grace period."""

    def __init__(
        self,
        message: str,
        *,
        grace_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if grace_seconds is not None:
            details["grace_seconds"] = grace_seconds
        super().__init__(message, error_code="DebugAttachError", details=details, **kwargs)
        self.grace_seconds = grace_seconds


class ExecutionTimeoutError(SamRunnerError):
    """Raised when waiting for an execution result exceeds its bound.

    The process may still be running when this is raised.
    """

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, error_code="ExecutionTimeoutError", details=details, **kwargs)
        self.timeout_seconds = timeout_seconds


class DebugProtocolError(SamRunnerError):
    """Raised for malformed frames on the debug connection."""

    def __init__(
        self,
        message: str,
        *,
        frame_kind: int | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if frame_kind is not None:
            details["frame_kind"] = frame_kind
        super().__init__(message, error_code="DebugProtocolError", details=details, **kwargs)
        self.frame_kind = frame_kind
