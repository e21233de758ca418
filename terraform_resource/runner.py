"""
Runners for the Concourse check, in and out steps.

Each runner turns a request into one Action, runs it inside a temporary
directory that is removed on every exit path, and assembles the response and
metadata files from the Result.
"""

import json
import logging
import shutil
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, TypeVar

import pydantic

from .errors import StateNotFoundError, ValidationError
from .models import (
    CheckRequest,
    InRequest,
    MetadataField,
    OutRequest,
    StepAction,
    StepResponse,
    StorageModel,
    TerraformModel,
)
from .names import generate_unique_name
from .settings import get_settings
from .storage import StateFile, StorageDriver, build_driver
from .terraform import Action, LegacyAction, Result, TerraformClient, build_action

logger = logging.getLogger(__name__)

ClientFactory = Callable[[TerraformModel, Path], TerraformClient]
DriverFactory = Callable[[StorageModel], StorageDriver]
RequestT = TypeVar("RequestT", bound=pydantic.BaseModel)

STATE_FILENAME = "terraform.tfstate"


def state_key(env_name: str) -> str:
    """Remote key of an environment's legacy state file."""
    return f"{env_name}.tfstate"


def parse_request(model_cls: type[RequestT], raw: str) -> RequestT:
    """Parse a JSON request, converting pydantic errors into ValidationError."""
    try:
        return model_cls.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid request: {e}") from e


@contextmanager
def temporary_directory() -> Iterator[Path]:
    """Per-invocation scratch directory, removed however the block exits."""
    path = Path(tempfile.mkdtemp(prefix=get_settings().tmp_dir_prefix))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def prepare_action(
    model: TerraformModel,
    storage: Optional[StorageModel],
    env_name: str,
    tmp_dir: Path,
    client_factory: ClientFactory = TerraformClient,
    driver_factory: DriverFactory = build_driver,
) -> Action:
    """
    Build the Action for one request.

    Native mode when a backend is configured; otherwise legacy mode with the
    state file kept at `<env_name>.tfstate` in the configured storage.
    """
    model = model.model_copy(update={"env_name": env_name})
    if model.is_native():
        model.validate_model()
        return build_action(client_factory(model, tmp_dir), env_name, model.delete_on_failure)

    if storage is None:
        raise ValidationError("Either 'backend_type' or 'storage' must be configured in source")
    driver = driver_factory(storage)
    model = model.model_copy(update={
        "state_file_local_path": str(tmp_dir / STATE_FILENAME),
        "state_file_remote_path": state_key(env_name),
    })
    model.validate_model()
    state_file = StateFile(
        Path(model.state_file_local_path), model.state_file_remote_path, driver
    )
    return build_action(
        client_factory(model, tmp_dir), env_name, model.delete_on_failure, state_file
    )


def build_metadata(result: Result, terraform_version: str) -> List[MetadataField]:
    """Sanitized outputs sorted by name, plus the terraform version."""
    metadata = [
        MetadataField(name=key, value=value)
        for key, value in sorted(result.sanitized_output().items())
    ]
    metadata.append(MetadataField(name="terraform_version", value=terraform_version))
    return metadata


def _make_source_dir(tmp_dir: Path) -> Path:
    source_dir = tmp_dir / "source"
    source_dir.mkdir()
    return source_dir


class CheckRunner:
    """Reports the current version of an environment, if it has one."""

    def __init__(
        self,
        client_factory: ClientFactory = TerraformClient,
        driver_factory: DriverFactory = build_driver,
    ):
        self.client_factory = client_factory
        self.driver_factory = driver_factory

    def run(self, req: CheckRequest) -> List[Dict[str, str]]:
        env_name = (req.version.env_name if req.version else "") or req.source.env_name
        if not env_name:
            logger.info("No env_name to check, reporting no versions")
            return []

        with temporary_directory() as tmp_dir:
            model = req.source.terraform.model_copy(update={"source": str(_make_source_dir(tmp_dir))})
            action = prepare_action(
                model, req.source.storage, env_name, tmp_dir,
                self.client_factory, self.driver_factory,
            )
            try:
                result = action.read()
            except StateNotFoundError:
                logger.info(f"No state for '{env_name}' yet")
                return []

        return [result.version.to_wire()]


class InRunner:
    """Fetches outputs (and optionally the state file) of an environment."""

    def __init__(
        self,
        output_dir: Path,
        client_factory: ClientFactory = TerraformClient,
        driver_factory: DriverFactory = build_driver,
    ):
        self.output_dir = Path(output_dir)
        self.client_factory = client_factory
        self.driver_factory = driver_factory

    def run(self, req: InRequest) -> StepResponse:
        req.version.validate_request()

        if req.params.action == StepAction.DESTROY:
            # The environment was just destroyed, there is nothing to fetch
            return StepResponse(version=req.version)

        with temporary_directory() as tmp_dir:
            update = {"source": str(_make_source_dir(tmp_dir))}
            if req.params.output_module:
                update["output_module"] = req.params.output_module
            model = req.source.terraform.model_copy(update=update)
            action = prepare_action(
                model, req.source.storage, req.version.env_name, tmp_dir,
                self.client_factory, self.driver_factory,
            )
            result = action.read(plan_only=req.version.is_plan())
            self._write_name_file(req.version.env_name)

            if result.version.is_zero():
                return StepResponse(version=req.version)

            self._write_metadata_file(result)
            metadata = build_metadata(result, action.client.version())
            if req.params.output_statefile:
                self._write_state_file(action)

        # Native reads report the requested version; the serial may have moved on
        version = result.version if isinstance(action, LegacyAction) else req.version
        return StepResponse(version=version, metadata=metadata)

    def _write_name_file(self, env_name: str) -> None:
        (self.output_dir / "name").write_text(env_name, encoding="utf-8")

    def _write_metadata_file(self, result: Result) -> None:
        (self.output_dir / "metadata").write_text(json.dumps(result.raw_output()), encoding="utf-8")

    def _write_state_file(self, action: Action) -> None:
        if isinstance(action, LegacyAction):
            contents = action.state_file.local_path.read_bytes()
        else:
            contents = action.client.state_pull(action.env_name)
        (self.output_dir / STATE_FILENAME).write_bytes(contents)


class OutRunner:
    """Applies or destroys an environment."""

    def __init__(
        self,
        sources_dir: Path,
        client_factory: ClientFactory = TerraformClient,
        driver_factory: DriverFactory = build_driver,
    ):
        self.sources_dir = Path(sources_dir)
        self.client_factory = client_factory
        self.driver_factory = driver_factory

    def run(self, req: OutRequest) -> StepResponse:
        params = req.params
        model = req.source.terraform.merge(params.terraform)
        if params.terraform_source:
            model.source = params.terraform_source
        if not model.source:
            raise ValidationError("Missing required field: 'params.terraform_source'")

        model = model.resolve_paths(self.sources_dir)
        model.parse_vars_from_files()
        model.parse_imports_from_files()
        # Var files were merged into vars above; terraform only sees the JSON vars file
        model.var_files = []

        with temporary_directory() as tmp_dir:
            env_name = self._resolve_env_name(req, model, tmp_dir)
            action = prepare_action(
                model, req.source.storage, env_name, tmp_dir,
                self.client_factory, self.driver_factory,
            )
            if params.action == StepAction.DESTROY:
                result = action.destroy()
            else:
                result = action.apply()
            metadata = build_metadata(result, action.client.version())

        return StepResponse(version=result.version, metadata=metadata)

    def _resolve_env_name(self, req: OutRequest, model: TerraformModel, tmp_dir: Path) -> str:
        params = req.params
        if params.env_name:
            return params.env_name
        if params.env_name_file:
            path = self.sources_dir / params.env_name_file
            try:
                env_name = path.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise ValidationError(f"Failed to read env_name_file '{path}': {e}") from e
            if not env_name:
                raise ValidationError(f"env_name_file '{path}' is empty")
            return env_name
        if params.generate_random_name:
            return generate_unique_name(self._existence_probe(req, model, tmp_dir))
        if req.source.env_name:
            return req.source.env_name
        raise ValidationError(
            "Must specify one of `params.env_name`, `params.env_name_file`, "
            "`params.generate_random_name`, or `source.env_name`"
        )

    def _existence_probe(
        self, req: OutRequest, model: TerraformModel, tmp_dir: Path
    ) -> Callable[[str], bool]:
        if model.is_native():
            client = self.client_factory(model, tmp_dir)
            client.init_with_backend()
            workspaces = set(client.workspace_list())
            return workspaces.__contains__

        if req.source.storage is None:
            raise ValidationError("Either 'backend_type' or 'storage' must be configured in source")
        driver = self.driver_factory(req.source.storage)
        return lambda name: not driver.version(state_key(name)).is_zero()
