"""
Terraform resource errors.

Every error raised by the lifecycle core derives from TerraformResourceError so
the CLI can report it in one place.
"""


class TerraformResourceError(Exception):
    """Base exception for all terraform resource errors."""
    pass


class ValidationError(TerraformResourceError):
    """Malformed request or configuration, raised before any side effect."""
    pass


class StateNotFoundError(TerraformResourceError):
    """No state exists yet for the requested environment."""
    pass


class WorkspaceNotFoundError(StateNotFoundError):
    """The backend has no workspace for the requested environment."""

    def __init__(self, env_name: str):
        self.env_name = env_name
        super().__init__(
            f"Workspace '{env_name}' does not exist in backend."
            "\nIf you intended to run the `destroy` action, add `put.get_params.action: destroy`."
        )


class StorageError(TerraformResourceError):
    """Base exception for remote storage failures."""
    pass


class StorageNotFoundError(StorageError, StateNotFoundError):
    """The requested key does not exist in the remote store."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"State file does not exist with key '{key}'")


class StorageReadError(StorageError):
    """Reading from the remote store failed."""
    pass


class StorageWriteError(StorageError):
    """Writing to the remote store failed."""
    pass


class ExternalToolError(TerraformResourceError):
    """The terraform CLI exited non-zero or produced unusable output."""

    def __init__(self, command: list[str], output: str, message: str | None = None):
        self.command = command
        self.output = output
        summary = message or f"Command '{' '.join(command)}' failed"
        super().__init__(f"{summary}\nOutput: {output}")


class WorkspaceRaceError(ExternalToolError):
    """Another invocation created the workspace between list and create."""
    pass


class MalformedStateError(TerraformResourceError):
    """Pulled state has no usable numeric 'serial' field."""
    pass


class ApplyError(TerraformResourceError):
    """
    Apply failed, optionally followed by a failed rollback.

    The original apply error is always part of the message; the rollback
    error is appended when compensation failed too.
    """

    def __init__(
        self,
        cause: Exception,
        rollback_error: Exception | None = None,
        rollback_label: str = "Destroy Error",
    ):
        self.cause = cause
        self.rollback_error = rollback_error
        message = f"Apply Error: {cause}"
        if rollback_error is not None:
            message += f"\n{rollback_label}: {rollback_error}"
        super().__init__(message)


class PostApplyVerificationError(TerraformResourceError):
    """Apply succeeded but reading state or outputs afterwards failed.

    Infrastructure may be live even though the step reports a failure.
    """

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(
            "Terraform apply succeeded but the resulting state could not be verified; "
            f"infrastructure may exist.\nError: {cause}"
        )


class DestroyError(TerraformResourceError):
    """Destroy failed and saving the state it left behind failed too.

    Both errors are kept so the destroy output is never replaced by the
    storage failure.
    """

    def __init__(self, cause: Exception, upload_error: Exception):
        self.cause = cause
        self.upload_error = upload_error
        super().__init__(f"{cause}\nState Upload Error: {upload_error}")
