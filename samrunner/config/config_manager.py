"""Global settings management.

Thread-safe access to the process-wide ``SamSettings`` plus a context manager
for temporary overrides.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    import types

from samrunner.config.sam_settings import DEFAULT_SETTINGS
from samrunner.config.sam_settings import SamSettings

logger = logging.getLogger(__name__)

_FIELD_NAMES = frozenset(f.name for f in dataclasses.fields(SamSettings))


class SettingsManager:
    """Thread-safe manager for process-wide settings state."""

    def __init__(self, default_settings: SamSettings) -> None:
        self._lock = threading.RLock()
        self._default_settings = default_settings
        self._current_settings = default_settings

    def get_settings(self) -> SamSettings:
        with self._lock:
            return self._current_settings

    def set_settings(self, settings: SamSettings) -> None:
        with self._lock:
            settings.validate()
            self._current_settings = settings

    def update_settings(self, **kwargs: Any) -> SamSettings:
        """Replace selected fields; unknown keys are ignored with a warning."""
        with self._lock:
            unknown_keys = sorted(set(kwargs) - _FIELD_NAMES)
            if unknown_keys:
                logger.warning("Ignoring unknown setting(s): %s", ", ".join(unknown_keys))
            changes = {k: v for k, v in kwargs.items() if k in _FIELD_NAMES}
            updated = dataclasses.replace(self._current_settings, **changes)
            updated.validate()
            self._current_settings = updated
            return updated

    def reset_settings(self) -> None:
        with self._lock:
            self._current_settings = self._default_settings

    def apply_context_changes(self, changes: dict[str, Any]) -> tuple[SamSettings, SamSettings]:
        """Apply temporary changes atomically.

        Returns:
            Tuple of (original_settings, new_settings).
        """
        with self._lock:
            original = self._current_settings
            new_settings = self.update_settings(**changes)
            return original, new_settings

    def restore_settings(self, settings: SamSettings) -> None:
        with self._lock:
            self._current_settings = settings


_settings_manager = SettingsManager(DEFAULT_SETTINGS)


def get_settings() -> SamSettings:
    """Get the current settings in a thread-safe manner."""
    return _settings_manager.get_settings()


def set_settings(settings: SamSettings) -> None:
    """Validate and install new settings."""
    _settings_manager.set_settings(settings)


def update_settings(**kwargs: Any) -> SamSettings:
    """Update the current settings with new values.

    Args:
        **kwargs: Field values to replace
    """
    return _settings_manager.update_settings(**kwargs)


def reset_settings() -> None:
    """Reset settings to defaults."""
    _settings_manager.reset_settings()


class SettingsContext:
    """Context manager for temporary settings changes.

    The previous settings are restored when the context exits.
    """

    def __init__(self, **kwargs: Any):
        self._manager = _settings_manager
        self._changes = kwargs
        self._original_settings: SamSettings | None = None

    def __enter__(self) -> SamSettings:
        self._original_settings, new_settings = self._manager.apply_context_changes(
            self._changes
        )
        return new_settings

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if self._original_settings is not None:
            self._manager.restore_settings(self._original_settings)


def settings_context(**kwargs: Any) -> SettingsContext:
    """Create a context manager for temporary settings changes."""
    return SettingsContext(**kwargs)
