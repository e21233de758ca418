"""
Centralized Pydantic models for the terraform resource.

This module contains the data models shared by the lifecycle core and the
check/in/out steps:
- Version identities (native serial and legacy storage version)
- Terraform and storage configuration models
- Concourse request/response payloads
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError

# Serial of an environment that has no state yet
ZERO_SERIAL = -1


# =============================================================================
# Version Models
# =============================================================================

class StorageVersion(BaseModel):
    """Version token assigned by the remote store to one stored object."""
    model_config = ConfigDict(frozen=True)

    version: str = ""
    last_modified: Optional[datetime] = None

    def is_zero(self) -> bool:
        """True when the object does not exist in the store."""
        return not self.version


class Version(BaseModel):
    """
    Identity of one persisted deployment state.

    Native workspace mode identifies state by `serial`, legacy blob mode by
    the opaque `storage_version` assigned by the store. Two versions are
    equal when env name and the field of their mode match.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    env_name: str = ""
    serial: int = ZERO_SERIAL
    storage_version: str = Field(default="", alias="lastmodified")
    plan_only: bool = False

    @field_validator("serial", mode="before")
    @classmethod
    def parse_serial(cls, v):
        """Concourse sends versions as strings; empty means no serial."""
        if v is None or v == "":
            return ZERO_SERIAL
        return v

    @field_validator("plan_only", mode="before")
    @classmethod
    def parse_plan_only(cls, v):
        if isinstance(v, str):
            return v.lower() == "true"
        return v

    @classmethod
    def from_storage(cls, env_name: str, storage_version: StorageVersion) -> "Version":
        """Build a legacy version from the store's version token."""
        return cls(env_name=env_name, storage_version=storage_version.version)

    def is_legacy(self) -> bool:
        return bool(self.storage_version)

    def is_zero(self) -> bool:
        """True when no real state is represented."""
        return self.serial < 0 and not self.storage_version

    def is_plan(self) -> bool:
        return self.plan_only

    def validate_request(self) -> None:
        """Raise ValidationError unless this version names an environment."""
        if not self.env_name:
            raise ValidationError("Version must specify a non-empty 'env_name'")

    def to_wire(self) -> Dict[str, str]:
        """Serialize to the string-only form Concourse expects."""
        wire = {"env_name": self.env_name}
        if self.is_legacy():
            wire["lastmodified"] = self.storage_version
        elif self.serial >= 0:
            wire["serial"] = str(self.serial)
        if self.plan_only:
            wire["plan_only"] = "true"
        return wire

    def _identity(self):
        if self.is_legacy():
            return (self.env_name, "legacy", self.storage_version)
        return (self.env_name, "serial", self.serial)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def _comparable_serial(self, other: "Version") -> int:
        if self.is_legacy() or other.is_legacy():
            raise TypeError("Legacy storage versions have no ordering")
        if self.env_name != other.env_name:
            raise TypeError("Versions of different environments have no ordering")
        return other.serial

    def __lt__(self, other: "Version") -> bool:
        return self.serial < self._comparable_serial(other)

    def __le__(self, other: "Version") -> bool:
        return self.serial <= self._comparable_serial(other)

    def __gt__(self, other: "Version") -> bool:
        return self.serial > self._comparable_serial(other)

    def __ge__(self, other: "Version") -> bool:
        return self.serial >= self._comparable_serial(other)


# =============================================================================
# Configuration Models
# =============================================================================

class StorageDriverType(str, Enum):
    """Supported legacy storage backends."""
    S3 = "s3"
    LOCAL = "local"
    NULL = "null"


class StorageModel(BaseModel):
    """Remote store settings for legacy blob mode."""
    driver: StorageDriverType = StorageDriverType.S3
    bucket: str = ""
    bucket_path: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    session_token: str = ""
    region_name: str = ""
    endpoint: str = ""
    server_side_encryption: str = ""
    sse_kms_key_id: str = ""
    # Root directory for the local driver
    path: str = ""

    def validate_model(self) -> None:
        if self.driver == StorageDriverType.S3 and not self.bucket:
            raise ValidationError("Missing required storage field: 'bucket'")
        if self.driver == StorageDriverType.LOCAL and not self.path:
            raise ValidationError("Missing required storage field: 'path'")


class TerraformModel(BaseModel):
    """Everything the terraform CLI needs for one invocation."""
    source: str = ""
    env_name: str = ""
    vars: Dict[str, Any] = Field(default_factory=dict)
    var_files: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    delete_on_failure: bool = False
    import_files: List[str] = Field(default_factory=list)
    imports: Dict[str, str] = Field(default_factory=dict)
    backend_type: str = ""
    backend_config: Dict[str, Any] = Field(default_factory=dict)
    output_module: str = ""
    state_file_local_path: str = ""
    state_file_remote_path: str = ""

    def is_native(self) -> bool:
        """Native workspace mode is selected by configuring a backend."""
        return bool(self.backend_type)

    def validate_model(self) -> None:
        """Raise ValidationError for configurations terraform cannot run."""
        if not self.source:
            raise ValidationError("Missing required terraform field: 'source'")
        if self.is_native():
            return
        missing = [
            name for name in ("state_file_local_path", "state_file_remote_path")
            if not getattr(self, name)
        ]
        if missing:
            raise ValidationError(
                f"Missing required terraform fields: {', '.join(missing)}"
            )

    def merge(self, other: "TerraformModel") -> "TerraformModel":
        """
        Return a copy of this model overridden by the fields set on `other`.

        Vars and env are merged key by key with `other` winning. Booleans set
        on `other` always win; other fields only when set to a non-empty value.
        """
        merged = self.model_copy(deep=True)
        for name in other.model_fields_set:
            value = getattr(other, name)
            if name in ("vars", "env"):
                combined = dict(getattr(merged, name))
                combined.update(value)
                setattr(merged, name, combined)
            elif value or isinstance(value, bool):
                setattr(merged, name, value)
        return merged

    def parse_vars_from_files(self) -> None:
        """Merge YAML/JSON var files into vars; explicit vars lose to file values."""
        for var_file in self.var_files:
            file_vars = _load_mapping(var_file, "var file")
            self.vars.update(file_vars)

    def parse_imports_from_files(self) -> None:
        """Merge YAML import files (address: id) into imports."""
        for import_file in self.import_files:
            file_imports = _load_mapping(import_file, "imports file")
            self.imports.update({str(k): str(v) for k, v in file_imports.items()})

    def resolve_paths(self, base_dir: Path) -> "TerraformModel":
        """Return a copy with relative file paths anchored at base_dir."""
        def anchor(path: str) -> str:
            return str(base_dir / path) if path and not Path(path).is_absolute() else path

        return self.model_copy(update={
            "source": anchor(self.source),
            "var_files": [anchor(p) for p in self.var_files],
            "import_files": [anchor(p) for p in self.import_files],
        })


def _load_mapping(path: str, kind: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"Failed to read {kind} '{path}': {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"Expected {kind} '{path}' to contain a mapping")
    return data


# =============================================================================
# Concourse Request / Response Models
# =============================================================================

class StepAction(str, Enum):
    """Actions accepted by the put step."""
    CREATE = "create"
    DESTROY = "destroy"


class Source(TerraformModel):
    """Resource `source` configuration: terraform defaults plus storage."""
    storage: Optional[StorageModel] = None

    @property
    def terraform(self) -> TerraformModel:
        # exclude_unset keeps the set-field bookkeeping merge() relies on
        return TerraformModel.model_validate(
            self.model_dump(exclude={"storage"}, exclude_unset=True)
        )


class GetParams(BaseModel):
    """Params of the implicit get after a put, and of explicit gets."""
    action: Optional[StepAction] = None
    output_statefile: bool = False
    output_module: str = ""


class OutParams(TerraformModel):
    """Params of the put step."""
    env_name_file: str = ""
    generate_random_name: bool = False
    terraform_source: str = ""
    action: StepAction = StepAction.CREATE

    @property
    def terraform(self) -> TerraformModel:
        fields = set(TerraformModel.model_fields)
        return TerraformModel.model_validate(
            self.model_dump(include=fields, exclude_unset=True)
        )


class CheckRequest(BaseModel):
    source: Source = Field(default_factory=Source)
    version: Optional[Version] = None


class InRequest(BaseModel):
    source: Source = Field(default_factory=Source)
    version: Version
    params: GetParams = Field(default_factory=GetParams)


class OutRequest(BaseModel):
    source: Source = Field(default_factory=Source)
    params: OutParams = Field(default_factory=OutParams)


class MetadataField(BaseModel):
    name: str
    value: str


class StepResponse(BaseModel):
    """Response written to stdout by the in and out steps."""
    version: Version
    metadata: List[MetadataField] = Field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps({
            "version": self.version.to_wire(),
            "metadata": [m.model_dump() for m in self.metadata],
        })
