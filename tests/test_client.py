"""Tests for the terraform CLI wrapper with subprocess mocked out."""

import json
import os
import subprocess
from unittest.mock import patch

import pytest

from terraform_resource.errors import ExternalToolError, WorkspaceRaceError
from terraform_resource.models import TerraformModel
from terraform_resource.settings import reload_settings
from terraform_resource.terraform import TerraformClient
from terraform_resource.terraform.client import BACKEND_OVERRIDE_FILENAME, VARS_FILENAME


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def source_dir(temp_dir):
    path = temp_dir / "source"
    path.mkdir()
    return path


@pytest.fixture
def client(source_dir, temp_dir):
    model = TerraformModel(
        source=str(source_dir),
        env_name="staging",
        backend_type="s3",
        backend_config={"bucket": "states", "key": "app.tfstate"},
        env={"AWS_REGION": "us-east-1"},
    )
    return TerraformClient(model, temp_dir, terraform_binary="terraform")


@pytest.fixture
def mock_run():
    with patch("terraform_resource.terraform.client.subprocess.run") as mock_run:
        mock_run.return_value = _completed()
        yield mock_run


class TestProcessHandling:
    """Tests for running terraform subprocesses."""

    def test_non_zero_exit_raises_with_output(self, client, mock_run):
        """Test that failures carry the engine's output verbatim."""
        mock_run.return_value = _completed(stderr="Error: quota exceeded", returncode=1)

        with pytest.raises(ExternalToolError, match="quota exceeded") as exc_info:
            client.apply()

        assert exc_info.value.command[:2] == ["terraform", "apply"]

    def test_timeout(self, client, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["terraform", "apply"], timeout=5)

        with pytest.raises(ExternalToolError, match="timed out"):
            client.apply()

    def test_missing_binary(self, client, mock_run):
        mock_run.side_effect = FileNotFoundError("terraform")

        with pytest.raises(ExternalToolError, match="Failed to execute"):
            client.init()

    def test_apply_environment(self, client, mock_run, source_dir):
        """Test that apply targets the workspace and disables prompts."""
        client.apply()

        kwargs = mock_run.call_args.kwargs
        assert kwargs["env"]["TF_WORKSPACE"] == "staging"
        assert kwargs["env"]["TF_INPUT"] == "false"
        assert kwargs["env"]["AWS_REGION"] == "us-east-1"
        assert kwargs["cwd"] == str(source_dir)
        assert mock_run.call_args.args[0][:3] == ["terraform", "apply", "-auto-approve"]

    def test_inherited_workspace_is_dropped(self, client, mock_run):
        with patch.dict(os.environ, {"TF_WORKSPACE": "leaked"}):
            client.init()

        assert "TF_WORKSPACE" not in mock_run.call_args.kwargs["env"]

    def test_vars_written_to_file(self, source_dir, temp_dir, mock_run):
        """Test that vars are passed through a generated JSON var file."""
        model = TerraformModel(source=str(source_dir), vars={"region": "us-east-1", "count": 2})
        client = TerraformClient(model, temp_dir)

        client.apply_with_state(temp_dir / "terraform.tfstate")

        vars_path = temp_dir / VARS_FILENAME
        assert json.loads(vars_path.read_text()) == {"region": "us-east-1", "count": 2}
        args = mock_run.call_args.args[0]
        assert f"-var-file={vars_path}" in args
        assert f"-state={temp_dir / 'terraform.tfstate'}" in args
        assert "TF_WORKSPACE" not in mock_run.call_args.kwargs["env"]

    def test_binary_from_settings(self, monkeypatch, source_dir, temp_dir):
        monkeypatch.setenv("TFR_TERRAFORM_BINARY", "/opt/bin/terraform")
        reload_settings()
        try:
            client = TerraformClient(TerraformModel(source=str(source_dir)), temp_dir)
        finally:
            monkeypatch.delenv("TFR_TERRAFORM_BINARY")
            reload_settings()

        assert client.binary == "/opt/bin/terraform"


class TestWorkspaces:
    """Tests for workspace commands."""

    def test_workspace_list(self, client, mock_run):
        mock_run.return_value = _completed(stdout="  default\n* staging\n  prod\n\n")

        assert client.workspace_list() == ["default", "staging", "prod"]

    def test_workspace_new_race(self, client, mock_run):
        """Test that a concurrently created workspace is reported as a race."""
        mock_run.return_value = _completed(
            stderr='Workspace "staging" already exists', returncode=1
        )

        with pytest.raises(WorkspaceRaceError):
            client.workspace_new("staging")

    def test_workspace_delete_selects_default_first(self, client, mock_run):
        client.workspace_delete("staging")

        commands = [c.args[0][1:] for c in mock_run.call_args_list]
        assert commands == [["workspace", "select", "default"], ["workspace", "delete", "staging"]]

    def test_default_workspace_is_never_deleted(self, client, mock_run):
        client.workspace_delete("default")

        mock_run.assert_not_called()


class TestInitialization:
    """Tests for init and the backend override file."""

    def test_init_with_backend_writes_override(self, client, mock_run, source_dir):
        client.init_with_backend("staging")

        override = json.loads((source_dir / BACKEND_OVERRIDE_FILENAME).read_text())
        assert override == {
            "terraform": {"backend": {"s3": {"bucket": "states", "key": "app.tfstate"}}}
        }
        assert mock_run.call_args.args[0] == ["terraform", "init", "-input=false", "-reconfigure"]

    def test_init_without_backend(self, client, mock_run):
        client.init()

        assert "-backend=false" in mock_run.call_args.args[0]


class TestReadCommands:
    """Tests for output, state and version commands."""

    def test_output(self, client, mock_run):
        outputs = {"url": {"value": "https://example.com", "sensitive": False, "type": "string"}}
        mock_run.return_value = _completed(stdout=json.dumps(outputs))

        assert client.output("staging") == outputs
        assert mock_run.call_args.kwargs["env"]["TF_WORKSPACE"] == "staging"

    def test_output_module(self, source_dir, temp_dir, mock_run):
        model = TerraformModel(source=str(source_dir), output_module="network")
        mock_run.return_value = _completed(stdout="{}")

        TerraformClient(model, temp_dir).output_with_state(temp_dir / "terraform.tfstate")

        assert "-module=network" in mock_run.call_args.args[0]

    def test_unparseable_output(self, client, mock_run):
        mock_run.return_value = _completed(stdout="not json")

        with pytest.raises(ExternalToolError, match="Failed to parse terraform output"):
            client.output("staging")

    def test_state_pull(self, client, mock_run):
        mock_run.return_value = _completed(stdout='{"serial": 4}')

        assert client.state_pull("staging") == b'{"serial": 4}'

    def test_version_json(self, client, mock_run):
        mock_run.return_value = _completed(stdout='{"terraform_version": "1.5.7", "platform": "linux_amd64"}')

        assert client.version() == "1.5.7"

    def test_version_text_fallback(self, client, mock_run):
        mock_run.return_value = _completed(stdout="Terraform v0.12.31\non linux_amd64\n")

        assert client.version() == "0.12.31"


class TestImports:
    """Tests for importing existing resources."""

    def test_skips_addresses_already_in_state(self, source_dir, temp_dir, mock_run):
        """Test that only addresses missing from state are imported."""
        model = TerraformModel(
            source=str(source_dir),
            backend_type="s3",
            imports={"aws_s3_bucket.logs": "logs-bucket", "aws_s3_bucket.data": "data-bucket"},
        )
        mock_run.side_effect = [_completed(stdout="aws_s3_bucket.logs\n"), _completed()]

        TerraformClient(model, temp_dir).import_state("staging")

        calls = [c.args[0] for c in mock_run.call_args_list]
        assert calls[0][1:3] == ["state", "list"]
        assert len(calls) == 2
        assert calls[1][1] == "import"
        assert calls[1][-2:] == ["aws_s3_bucket.data", "data-bucket"]

    def test_no_imports_configured(self, client, mock_run):
        client.import_state("staging")

        mock_run.assert_not_called()
