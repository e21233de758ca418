"""
Pytest configuration and fixtures for terraform resource tests.
"""

import json
import tempfile
from pathlib import Path

import pytest

from terraform_resource.errors import WorkspaceNotFoundError
from terraform_resource.models import TerraformModel


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


class FakeTerraformClient:
    """
    In-memory stand-in for TerraformClient.

    Native workspaces are tracked as a list plus a serial per workspace.
    Legacy commands read and write the state file they are pointed at.
    Set the *_error attributes to make the matching command fail.
    """

    def __init__(self, model: TerraformModel | None = None, work_dir: Path | None = None):
        self.model = model or TerraformModel(source="/tmp/source", backend_type="s3")
        self.work_dir = work_dir
        self.workspaces = ["default"]
        self.serials: dict[str, int] = {}
        self.outputs: dict = {}
        self.raw_state: bytes | None = None
        self.terraform_version = "1.5.7"
        self.calls: list[str] = []

        self.apply_error = None
        self.destroy_error = None
        self.state_pull_error = None
        self.output_error = None
        self.workspace_new_error = None

    def init_with_backend(self, env_name: str = "") -> None:
        self.calls.append("init_with_backend")

    def init(self) -> None:
        self.calls.append("init")

    def workspace_list(self) -> list[str]:
        self.calls.append("workspace_list")
        return list(self.workspaces)

    def workspace_new(self, name: str) -> None:
        self.calls.append("workspace_new")
        if self.workspace_new_error:
            raise self.workspace_new_error
        self.workspaces.append(name)
        self.serials[name] = 0

    def workspace_delete(self, name: str) -> None:
        self.calls.append("workspace_delete")
        if name not in self.workspaces:
            raise WorkspaceNotFoundError(name)
        self.workspaces.remove(name)
        self.serials.pop(name, None)

    def import_state(self, env_name: str, state_path: Path | None = None) -> None:
        self.calls.append("import_state")

    def apply(self) -> None:
        self.calls.append("apply")
        if self.apply_error:
            raise self.apply_error
        env_name = self.model.env_name
        self.serials[env_name] = self.serials.get(env_name, 0) + 1

    def destroy(self) -> None:
        self.calls.append("destroy")
        if self.destroy_error:
            raise self.destroy_error
        self.serials[self.model.env_name] = self.serials.get(self.model.env_name, 0) + 1

    def apply_with_state(self, state_path: Path) -> None:
        self.calls.append("apply_with_state")
        # terraform writes whatever it managed to create, even on failure
        self._bump_state(Path(state_path), resources=["aws_s3_bucket.main"])
        if self.apply_error:
            raise self.apply_error

    def destroy_with_state(self, state_path: Path) -> None:
        self.calls.append("destroy_with_state")
        if self.destroy_error:
            raise self.destroy_error
        self._bump_state(Path(state_path), resources=[])

    def state_pull(self, env_name: str) -> bytes:
        self.calls.append("state_pull")
        if self.state_pull_error:
            raise self.state_pull_error
        if self.raw_state is not None:
            return self.raw_state
        return json.dumps({"version": 4, "serial": self.serials.get(env_name, 0)}).encode()

    def output(self, env_name: str) -> dict:
        self.calls.append("output")
        if self.output_error:
            raise self.output_error
        return self.outputs

    def output_with_state(self, state_path: Path) -> dict:
        self.calls.append("output_with_state")
        if self.output_error:
            raise self.output_error
        return self.outputs

    def version(self) -> str:
        return self.terraform_version

    @staticmethod
    def _bump_state(path: Path, resources: list[str]) -> None:
        serial = 0
        if path.exists():
            serial = json.loads(path.read_text())["serial"]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"version": 4, "serial": serial + 1, "resources": resources}))


@pytest.fixture
def fake_client():
    """A FakeTerraformClient for a native-mode environment named 'staging'."""
    return FakeTerraformClient(
        TerraformModel(source="/tmp/source", env_name="staging", backend_type="s3")
    )


@pytest.fixture
def client_factory(fake_client):
    """Client factory for the runners that hands out the shared fake client."""
    def factory(model, work_dir):
        fake_client.model = model
        fake_client.work_dir = work_dir
        return fake_client
    return factory
