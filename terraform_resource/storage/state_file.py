"""Local copy of a remote legacy state file."""

import logging
from pathlib import Path

from ..errors import StorageReadError
from ..models import StorageVersion
from .base import StorageDriver

logger = logging.getLogger(__name__)


class StateFile:
    """
    Pairs a local path with a remote key in a StorageDriver.

    The local path is expected to live inside a per-invocation temporary
    directory that the caller removes when the operation ends.
    """

    def __init__(self, local_path: Path, remote_path: str, storage_driver: StorageDriver):
        """
        Initialize StateFile.

        Args:
            local_path: Where terraform reads and writes the state
            remote_path: Key of the state in the store (e.g. "staging.tfstate")
            storage_driver: Store holding the remote copy
        """
        self.local_path = Path(local_path)
        self.remote_path = remote_path
        self.storage_driver = storage_driver

    def exists_locally(self) -> bool:
        return self.local_path.is_file()

    def download(self) -> StorageVersion:
        """
        Fetch the remote state into local_path if it exists.

        Returns:
            The remote version, or the zero version when there is no remote
            state. Whether absence is fatal is up to the caller.
        """
        version = self.storage_driver.version(self.remote_path)
        if version.is_zero():
            logger.info(f"No existing state file with key '{self.remote_path}'")
            return version

        content, version = self.storage_driver.download(self.remote_path)
        self.local_path.parent.mkdir(parents=True, exist_ok=True)
        self.local_path.write_bytes(content)
        logger.info(f"Downloaded state file '{self.remote_path}' at version {version.version}")
        return version

    def upload(self) -> StorageVersion:
        """Push local_path to the remote key and return the new version."""
        try:
            content = self.local_path.read_bytes()
        except OSError as e:
            raise StorageReadError(f"Failed to read local state file '{self.local_path}': {e}") from e

        version = self.storage_driver.upload(self.remote_path, content)
        logger.info(f"Uploaded state file '{self.remote_path}' at version {version.version}")
        return version

    def delete(self) -> None:
        """Remove the remote copy."""
        self.storage_driver.delete(self.remote_path)
        logger.info(f"Deleted state file '{self.remote_path}'")
