"""Filesystem storage driver, mostly useful for local pipelines and tests."""

import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..errors import (
    StorageNotFoundError,
    StorageReadError,
    StorageWriteError,
    ValidationError,
)
from ..models import StorageVersion
from .base import StorageDriver

logger = logging.getLogger(__name__)


class LocalDriver(StorageDriver):
    """
    StorageDriver keeping each key as a file under a root directory.

    The version token combines the file's modification time with a content
    digest, so any rewrite yields a new token.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValidationError(f"Key '{key}' escapes storage root '{self.root}'")
        return path

    @staticmethod
    def _version_of(path: Path, content: bytes) -> StorageVersion:
        stat = path.stat()
        digest = hashlib.sha256(content).hexdigest()[:16]
        return StorageVersion(
            version=f"{stat.st_mtime_ns}-{digest}",
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def upload(self, key: str, content: bytes) -> StorageVersion:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to temporary file first, then rename (atomic operation)
            temp_file = path.with_name(path.name + ".tmp")
            temp_file.write_bytes(content)
            temp_file.replace(path)
            version = self._version_of(path, content)
        except OSError as e:
            raise StorageWriteError(f"Failed to write '{path}': {e}") from e

        logger.debug(f"Stored {key} at version {version.version}")
        return version

    def download(self, key: str) -> tuple[bytes, StorageVersion]:
        path = self._path(key)
        try:
            content = path.read_bytes()
            return content, self._version_of(path, content)
        except FileNotFoundError as e:
            raise StorageNotFoundError(key) from e
        except OSError as e:
            raise StorageReadError(f"Failed to read '{path}': {e}") from e

    def version(self, key: str) -> StorageVersion:
        path = self._path(key)
        if not path.is_file():
            return StorageVersion()
        try:
            return self._version_of(path, path.read_bytes())
        except OSError as e:
            raise StorageReadError(f"Failed to read '{path}': {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageWriteError(f"Failed to delete '{path}': {e}") from e
