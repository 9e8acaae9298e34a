from __future__ import annotations

import json

from samrunner.execution import InvocationWorkspace
from samrunner.execution import build_template
from samrunner.models import RunConfiguration
from samrunner.models import RunRequest


def _configuration(tmp_path, payload='"Hello World"', **kwargs):
    return RunConfiguration(
        request=RunRequest(handler="lambda_handler.handle_request", input=payload),
        code_uri=str(tmp_path),
        **kwargs,
    )


def test_template_describes_single_function(tmp_path):
    template = build_template(
        _configuration(tmp_path, runtime="python3.11", memory_size=256, logical_id="Upper")
    )

    resource = template["Resources"]["Upper"]
    assert resource["Type"] == "AWS::Serverless::Function"
    properties = resource["Properties"]
    assert properties["Handler"] == "lambda_handler.handle_request"
    assert properties["CodeUri"] == str(tmp_path.resolve())
    assert properties["Runtime"] == "python3.11"
    assert properties["MemorySize"] == 256
    assert properties["Timeout"] == 900
    assert "Environment" not in properties


def test_template_includes_environment_variables(tmp_path):
    template = build_template(_configuration(tmp_path, environment_variables={"STAGE": "dev"}))
    properties = template["Resources"]["Function"]["Properties"]
    assert properties["Environment"] == {"Variables": {"STAGE": "dev"}}


def test_workspace_writes_template_and_raw_event(tmp_path):
    payload = '{"not": "reformatted" }'
    workspace = InvocationWorkspace.create(_configuration(tmp_path, payload=payload))
    try:
        template = json.loads(workspace.template_path.read_text(encoding="utf-8"))
        assert "Function" in template["Resources"]
        assert workspace.event_path.read_text(encoding="utf-8") == payload
        assert workspace.directory.name.startswith("samrunner-")
    finally:
        workspace.cleanup()


def test_workspace_cleanup_is_idempotent(tmp_path):
    workspace = InvocationWorkspace.create(_configuration(tmp_path))
    workspace.cleanup()
    assert not workspace.directory.exists()
    workspace.cleanup()
