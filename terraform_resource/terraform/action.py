"""
Terraform Action - apply/destroy lifecycle with rollback on failure.

Apply:   setup (init, imports) → ensure workspace → apply → finalize
         apply failure with delete_on_failure → destroy once, then fail
Destroy: setup → destroy (skipped when nothing was applied) → delete workspace

Two strategies share one interface and one Result shape:
- Action: native backend workspaces, identity is the state serial
- LegacyAction: state blob in a StorageDriver, identity is the storage version
"""

import json
import logging
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field

from ..errors import (
    ApplyError,
    DestroyError,
    MalformedStateError,
    PostApplyVerificationError,
    StorageNotFoundError,
    TerraformResourceError,
    WorkspaceNotFoundError,
)
from ..models import StorageVersion, Version
from ..storage import StateFile
from .client import TerraformClient

logger = logging.getLogger(__name__)

SENSITIVE_MARKER = "<sensitive>"


class Result(BaseModel):
    """Version and outputs produced by one action."""
    version: Version
    output: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def raw_output(self) -> Dict[str, Any]:
        """Output values keyed by name, for machine consumption."""
        return {key: record.get("value") for key, record in self.output.items()}

    def sanitized_output(self) -> Dict[str, str]:
        """
        Output values rendered for display.

        Sensitive values are replaced by SENSITIVE_MARKER. Other values are
        rendered as JSON with the quotes around plain strings stripped. A value
        that cannot be serialized degrades to a message for that key only.
        """
        sanitized = {}
        for key, record in self.output.items():
            if record.get("sensitive") is True:
                sanitized[key] = SENSITIVE_MARKER
                continue
            try:
                text = json.dumps(record.get("value"), ensure_ascii=False)
            except (TypeError, ValueError) as e:
                text = f"Unable to parse output value for key '{key}': {e}"
            sanitized[key] = text.strip('"')
        return sanitized


class ActionState(str, Enum):
    """Lifecycle states of one action invocation."""
    IDLE = "idle"
    SETTING_UP = "setting_up"
    APPLYING = "applying"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK_FAILED = "rolled_back_failed"
    DESTROYING = "destroying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Action:
    """Apply/destroy against native backend workspaces."""

    def __init__(self, client: TerraformClient, env_name: str, delete_on_failure: bool = False):
        """
        Initialize Action.

        Args:
            client: Terraform CLI wrapper for the source directory
            env_name: Environment (workspace) name
            delete_on_failure: Destroy partially created resources if apply fails
        """
        self.client = client
        self.env_name = env_name
        self.delete_on_failure = delete_on_failure
        self.state = ActionState.IDLE

    def _transition(self, state: ActionState) -> None:
        logger.debug(f"Action '{self.env_name}': {self.state.value} -> {state.value}")
        self.state = state

    # =========================================================================
    # Public Interface
    # =========================================================================

    def apply(self) -> Result:
        """
        Run terraform apply for the environment.

        Raises:
            ApplyError: Apply failed (the rollback outcome is attached)
            PostApplyVerificationError: Apply succeeded but state/output reads failed
            TerraformResourceError: Setup failed before anything was mutated
        """
        self._transition(ActionState.SETTING_UP)
        try:
            self._setup()
            self._prepare_apply()
        except TerraformResourceError:
            self._transition(ActionState.FAILED)
            raise

        self._transition(ActionState.APPLYING)
        logger.info("Terraform Apply")
        try:
            self._run_apply()
        except TerraformResourceError as e:
            logger.error("Failed To Run Terraform Apply!")
            self._handle_apply_failure(e)

        try:
            result = self._finalize()
        except TerraformResourceError as e:
            self._transition(ActionState.FAILED)
            raise PostApplyVerificationError(e) from e

        self._transition(ActionState.SUCCEEDED)
        logger.info("Successfully Ran Terraform Apply!")
        return result

    def destroy(self) -> Result:
        """Run terraform destroy; destroying a never-applied environment succeeds."""
        self._transition(ActionState.DESTROYING)
        try:
            self._setup()
            result = self._attempt_destroy()
        except TerraformResourceError:
            self._transition(ActionState.FAILED)
            logger.error("Failed To Run Terraform Destroy!")
            raise

        self._transition(ActionState.SUCCEEDED)
        logger.info("Successfully Ran Terraform Destroy!")
        return result

    def read(self, plan_only: bool = False) -> Result:
        """
        Read the current version and outputs without mutating anything.

        A missing environment yields a zero version for plan-only reads and
        raises StateNotFoundError otherwise.
        """
        self.client.init_with_backend(self.env_name)
        if self.env_name not in self.client.workspace_list():
            if plan_only:
                return Result(version=Version(env_name=self.env_name, plan_only=True))
            raise WorkspaceNotFoundError(self.env_name)

        serial = self._current_serial()
        return Result(
            version=Version(env_name=self.env_name, serial=serial),
            output=self.client.output(self.env_name),
        )

    def ensure_workspace(self) -> None:
        """Create the workspace unless it already exists."""
        workspaces = self.client.workspace_list()
        if self.env_name in workspaces:
            logger.debug(f"Workspace '{self.env_name}' already exists")
            return
        logger.info(f"Creating workspace '{self.env_name}'")
        self.client.workspace_new(self.env_name)

    # =========================================================================
    # Protocol steps
    # =========================================================================

    def _setup(self) -> None:
        self.client.init_with_backend(self.env_name)
        self.client.import_state(self.env_name)

    def _prepare_apply(self) -> None:
        self.ensure_workspace()

    def _run_apply(self) -> None:
        self.client.apply()

    def _finalize(self) -> Result:
        serial = self._current_serial()
        output = self.client.output(self.env_name)
        return Result(
            version=Version(env_name=self.env_name, serial=serial),
            output=output,
        )

    def _attempt_destroy(self) -> Result:
        logger.warning("Terraform Destroy")
        if self.env_name not in self.client.workspace_list():
            logger.info(f"Workspace '{self.env_name}' does not exist, nothing to destroy")
        else:
            self.client.destroy()
            self.client.workspace_delete(self.env_name)
        return Result(version=Version(env_name=self.env_name))

    def _handle_apply_failure(self, error: TerraformResourceError) -> None:
        """Compensate once if configured, then always raise ApplyError."""
        if not self.delete_on_failure:
            self._transition(ActionState.FAILED)
            raise ApplyError(error) from error

        self._transition(ActionState.ROLLING_BACK)
        logger.warning("Cleaning Up Partially Created Resources...")
        try:
            self._attempt_destroy()
        except TerraformResourceError as destroy_error:
            logger.error("Failed To Run Terraform Destroy!")
            self._transition(ActionState.ROLLED_BACK_FAILED)
            raise ApplyError(error, rollback_error=destroy_error) from error

        self._transition(ActionState.ROLLED_BACK_FAILED)
        raise ApplyError(error) from error

    def _current_serial(self) -> int:
        raw_state = self.client.state_pull(self.env_name)
        return parse_serial(raw_state)


class LegacyAction(Action):
    """Apply/destroy with the state file kept in a StorageDriver."""

    def __init__(
        self,
        client: TerraformClient,
        state_file: StateFile,
        env_name: str,
        delete_on_failure: bool = False,
    ):
        super().__init__(client, env_name, delete_on_failure)
        self.state_file = state_file
        self._uploaded = False

    def read(self, plan_only: bool = False) -> Result:
        storage_version = self.state_file.download()
        if storage_version.is_zero():
            if plan_only:
                return Result(version=Version(env_name=self.env_name, plan_only=True))
            raise StorageNotFoundError(self.state_file.remote_path)

        return Result(
            version=Version.from_storage(self.env_name, storage_version),
            output=self.client.output_with_state(self.state_file.local_path),
        )

    def _setup(self) -> None:
        self.client.init()
        self.state_file.download()
        self.client.import_state(self.env_name, state_path=self.state_file.local_path)

    def _prepare_apply(self) -> None:
        # No workspace to ensure, the state file is the environment
        pass

    def _run_apply(self) -> None:
        self.client.apply_with_state(self.state_file.local_path)

    def _finalize(self) -> Result:
        storage_version = self._upload_once()
        output = self.client.output_with_state(self.state_file.local_path)
        return Result(
            version=Version.from_storage(self.env_name, storage_version),
            output=output,
        )

    def _attempt_destroy(self) -> Result:
        logger.warning("Terraform Destroy")
        if not self.state_file.exists_locally():
            logger.info(f"No state for '{self.env_name}', nothing to destroy")
            return Result(version=Version(env_name=self.env_name))

        try:
            self.client.destroy_with_state(self.state_file.local_path)
        except TerraformResourceError as destroy_error:
            # Keep whatever terraform still tracks so it can be cleaned up later
            try:
                self._upload_once()
            except TerraformResourceError as upload_error:
                raise DestroyError(destroy_error, upload_error) from destroy_error
            raise
        self.state_file.delete()
        return Result(version=Version(env_name=self.env_name))

    def _handle_apply_failure(self, error: TerraformResourceError) -> None:
        if not self.delete_on_failure and self.state_file.exists_locally():
            # Persist partially created resources
            try:
                self._upload_once()
            except TerraformResourceError as upload_error:
                self._transition(ActionState.FAILED)
                raise ApplyError(
                    error, rollback_error=upload_error, rollback_label="State Upload Error"
                ) from error
        super()._handle_apply_failure(error)

    def _upload_once(self) -> StorageVersion:
        if self._uploaded:
            raise TerraformResourceError(
                f"State file '{self.state_file.remote_path}' was already uploaded by this operation"
            )
        self._uploaded = True
        return self.state_file.upload()


def parse_serial(raw_state: bytes) -> int:
    """Extract the top-level numeric 'serial' from pulled terraform state."""
    try:
        state = json.loads(raw_state)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedStateError(
            f"Failed to unmarshal JSON output.\nError: {e}\nOutput: {raw_state!r}"
        ) from e

    serial = state.get("serial") if isinstance(state, dict) else None
    # bool is an int subclass but never a valid serial
    if isinstance(serial, bool) or not isinstance(serial, (int, float)):
        raise MalformedStateError(f"Expected number value for 'serial' but got '{serial!r}'")
    return int(serial)


def build_action(
    client: TerraformClient,
    env_name: str,
    delete_on_failure: bool = False,
    state_file: StateFile | None = None,
) -> Action:
    """
    Pick the persistence strategy once per request.

    Native workspace mode when the client's model configures a backend,
    legacy blob mode (which requires a state_file) otherwise.
    """
    if client.model.is_native():
        return Action(client, env_name, delete_on_failure)
    if state_file is None:
        raise ValueError("Legacy storage mode requires a state file")
    return LegacyAction(client, state_file, env_name, delete_on_failure)
