"""Temporary files handed to ``sam local invoke``.

Each invocation gets its own directory holding a generated template with a
single function resource and the event file with the raw input payload.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
import shutil
import tempfile
from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from samrunner.models import RunConfiguration

logger = logging.getLogger(__name__)

TEMPLATE_FILE_NAME = "template.json"
EVENT_FILE_NAME = "event.json"


def build_template(configuration: RunConfiguration) -> dict[str, Any]:
    """Return a SAM template describing the configured function."""
    properties: dict[str, Any] = {
        "Handler": configuration.request.handler,
        "CodeUri": configuration.resolved_code_uri,
        "Runtime": configuration.runtime,
        "Timeout": configuration.function_timeout_seconds,
        "MemorySize": configuration.memory_size,
    }
    if configuration.environment_variables:
        properties["Environment"] = {"Variables": dict(configuration.environment_variables)}

    return {
        "AWSTemplateFormatVersion": "2010-09-09",
        "Transform": "AWS::Serverless-2016-10-31",
        "Resources": {
            configuration.logical_id: {
                "Type": "AWS::Serverless::Function",
                "Properties": properties,
            }
        },
    }


class InvocationWorkspace:
    """Owns the temporary directory for one invocation."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.template_path = directory / TEMPLATE_FILE_NAME
        self.event_path = directory / EVENT_FILE_NAME
        self._removed = False

    @classmethod
    def create(cls, configuration: RunConfiguration) -> InvocationWorkspace:
        workspace = cls(Path(tempfile.mkdtemp(prefix="samrunner-")))
        try:
            workspace.template_path.write_text(
                json.dumps(build_template(configuration), indent=2), encoding="utf-8"
            )
            workspace.event_path.write_text(configuration.request.input, encoding="utf-8")
        except OSError:
            workspace.cleanup()
            raise
        logger.debug("Wrote invocation files to %s", workspace.directory)
        return workspace

    def cleanup(self) -> None:
        """Remove the directory. Safe to call more than once."""
        if self._removed:
            return
        self._removed = True
        shutil.rmtree(self.directory, ignore_errors=True)
