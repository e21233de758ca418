"""
Terraform Client - runs the terraform CLI as a sequence of subprocess steps.

Every step is a separate `terraform` invocation. A non-zero exit raises
ExternalToolError carrying the captured output verbatim so operators see the
engine's own diagnostics.
"""

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ExternalToolError, WorkspaceRaceError
from ..models import TerraformModel
from ..settings import get_settings

logger = logging.getLogger(__name__)

BACKEND_OVERRIDE_FILENAME = "resource_backend_override.tf.json"
VARS_FILENAME = "resource_vars.tfvars.json"
DEFAULT_WORKSPACE = "default"


class TerraformClient:
    """Wraps the terraform CLI for one source directory."""

    def __init__(self, model: TerraformModel, work_dir: Path, terraform_binary: str | None = None):
        """
        Initialize TerraformClient.

        Args:
            model: Terraform configuration (source dir, vars, backend, imports)
            work_dir: Per-invocation scratch directory for generated files
            terraform_binary: Overrides the binary from settings
        """
        settings = get_settings()
        self.model = model
        self.work_dir = Path(work_dir)
        self.binary = terraform_binary or settings.terraform_binary
        self.timeout = settings.command_timeout

    # =========================================================================
    # Process handling
    # =========================================================================

    def _environment(self, env_name: Optional[str] = None) -> Dict[str, str]:
        env = os.environ.copy()
        # A workspace inherited from the caller would silently redirect state
        env.pop("TF_WORKSPACE", None)
        env.update(self.model.env)
        env["TF_INPUT"] = "false"
        if env_name:
            env["TF_WORKSPACE"] = env_name
        return env

    def _run(self, *args: str, env_name: Optional[str] = None) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug(f"Executing: {' '.join(cmd)}")
        try:
            process = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._environment(env_name),
                cwd=self.model.source or None,
            )
        except subprocess.TimeoutExpired as e:
            output = _decode(e.stdout) + _decode(e.stderr)
            raise ExternalToolError(cmd, output, f"Command timed out after {self.timeout}s") from e
        except OSError as e:
            raise ExternalToolError(cmd, str(e), f"Failed to execute '{self.binary}'") from e

        for line in process.stdout.splitlines():
            logger.debug(line)
        if process.returncode != 0:
            output = (process.stdout + process.stderr).strip()
            raise ExternalToolError(
                cmd, output, f"Command '{' '.join(cmd)}' exited with code {process.returncode}"
            )
        return process

    def _var_args(self) -> List[str]:
        args = []
        if self.model.vars:
            vars_path = self.work_dir / VARS_FILENAME
            vars_path.write_text(json.dumps(self.model.vars), encoding="utf-8")
            args.append(f"-var-file={vars_path}")
        args.extend(f"-var-file={path}" for path in self.model.var_files)
        return args

    # =========================================================================
    # Initialization
    # =========================================================================

    def write_backend_override(self) -> Path:
        """Write the backend block terraform init should use into the source dir."""
        override = {
            "terraform": {
                "backend": {self.model.backend_type: self.model.backend_config}
            }
        }
        path = Path(self.model.source) / BACKEND_OVERRIDE_FILENAME
        path.write_text(json.dumps(override, indent=2), encoding="utf-8")
        return path

    def init_with_backend(self, env_name: str = "") -> None:
        """Initialize the source dir against the configured remote backend."""
        target = f" for '{env_name}'" if env_name else ""
        logger.info(f"Initializing backend '{self.model.backend_type}'{target}")
        self.write_backend_override()
        self._run("init", "-input=false", "-reconfigure")

    def init(self) -> None:
        """Initialize providers and modules without a remote backend."""
        self._run("init", "-input=false", "-backend=false")

    # =========================================================================
    # Workspaces
    # =========================================================================

    def workspace_list(self) -> List[str]:
        process = self._run("workspace", "list")
        spaces = []
        for line in process.stdout.splitlines():
            name = line.strip().lstrip("*").strip()
            if name:
                spaces.append(name)
        return spaces

    def workspace_new(self, name: str) -> None:
        try:
            self._run("workspace", "new", name)
        except ExternalToolError as e:
            if "already exists" in e.output:
                raise WorkspaceRaceError(
                    e.command, e.output,
                    f"Workspace '{name}' was created concurrently by another invocation",
                ) from e
            raise

    def workspace_select(self, name: str) -> None:
        self._run("workspace", "select", name)

    def workspace_delete(self, name: str) -> None:
        """Delete a workspace; the default workspace is never deleted."""
        if name == DEFAULT_WORKSPACE:
            return
        self._run("workspace", "select", DEFAULT_WORKSPACE)
        self._run("workspace", "delete", name)

    # =========================================================================
    # Mutating commands
    # =========================================================================

    def apply(self) -> None:
        self._run("apply", "-auto-approve", "-input=false", *self._var_args(),
                  env_name=self.model.env_name)

    def destroy(self) -> None:
        self._run("destroy", "-auto-approve", "-input=false", *self._var_args(),
                  env_name=self.model.env_name)

    def apply_with_state(self, state_path: Path) -> None:
        self._run("apply", "-auto-approve", "-input=false", f"-state={state_path}",
                  *self._var_args())

    def destroy_with_state(self, state_path: Path) -> None:
        self._run("destroy", "-auto-approve", "-input=false", f"-state={state_path}",
                  *self._var_args())

    def import_state(self, env_name: str, state_path: Optional[Path] = None) -> None:
        """Import every configured address not already tracked in state."""
        if not self.model.imports:
            return

        state_args = [f"-state={state_path}"] if state_path else []
        workspace = None if state_path else env_name
        existing = set()
        if state_path is None or Path(state_path).exists():
            process = self._run("state", "list", *state_args, env_name=workspace)
            existing = set(process.stdout.split())

        for address, resource_id in self.model.imports.items():
            if address in existing:
                logger.debug(f"Skipping import of '{address}', already in state")
                continue
            logger.info(f"Importing '{resource_id}' as '{address}'")
            self._run("import", "-input=false", *state_args, *self._var_args(),
                      address, resource_id, env_name=workspace)

    # =========================================================================
    # Read commands
    # =========================================================================

    def state_pull(self, env_name: str) -> bytes:
        return self._run("state", "pull", env_name=env_name).stdout.encode("utf-8")

    def output(self, env_name: str) -> Dict[str, Dict[str, Any]]:
        return self._output(env_name=env_name)

    def output_with_state(self, state_path: Path) -> Dict[str, Dict[str, Any]]:
        return self._output(f"-state={state_path}")

    def _output(self, *extra: str, env_name: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        args = ["output", "-json", *extra]
        if self.model.output_module:
            args.append(f"-module={self.model.output_module}")
        process = self._run(*args, env_name=env_name)
        try:
            outputs = json.loads(process.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ExternalToolError(
                [self.binary, *args], process.stdout, f"Failed to parse terraform output: {e}"
            ) from e
        if not isinstance(outputs, dict):
            raise ExternalToolError(
                [self.binary, *args], process.stdout, "Expected terraform output to be a JSON object"
            )
        return outputs

    def version(self) -> str:
        process = self._run("version", "-json")
        try:
            return json.loads(process.stdout)["terraform_version"]
        except (json.JSONDecodeError, KeyError, TypeError):
            # Older releases only support the plain text form
            first_line = process.stdout.strip().splitlines()[0] if process.stdout.strip() else ""
            return first_line.removeprefix("Terraform v")


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
