"""
Remote storage for legacy blob-mode state files.

Exports:
  - StorageDriver and its S3, local filesystem and null backends
  - StateFile for downloading/uploading one state file
  - build_driver to pick a backend from storage configuration
"""

from pathlib import Path

from ..models import StorageDriverType, StorageModel
from .base import StorageDriver
from .local import LocalDriver
from .null import NullDriver
from .s3 import S3Driver
from .state_file import StateFile


def build_driver(model: StorageModel) -> StorageDriver:
    """Validate storage configuration and build the matching driver."""
    model.validate_model()
    if model.driver == StorageDriverType.LOCAL:
        return LocalDriver(Path(model.path))
    if model.driver == StorageDriverType.NULL:
        return NullDriver()
    return S3Driver.from_model(model)


__all__ = [
    "StorageDriver",
    "S3Driver",
    "LocalDriver",
    "NullDriver",
    "StateFile",
    "build_driver",
]
