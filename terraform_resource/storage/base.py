"""Storage driver interface for legacy blob-mode state persistence."""

from abc import ABC, abstractmethod

from ..models import StorageVersion


class StorageDriver(ABC):
    """
    Versioned key/blob store.

    Every backend keeps one asymmetry: `version()` reports a missing key as
    the zero StorageVersion, while `download()` raises StorageNotFoundError
    for it. Callers probe with `version()` and branch once on `is_zero()`.
    """

    @abstractmethod
    def upload(self, key: str, content: bytes) -> StorageVersion:
        """
        Write content under key.

        Returns:
            Version assigned by the store to the new object

        Raises:
            StorageWriteError: If the store rejects the write
        """

    @abstractmethod
    def download(self, key: str) -> tuple[bytes, StorageVersion]:
        """
        Read the content stored under key.

        Raises:
            StorageNotFoundError: If key does not exist
            StorageReadError: On any other read failure
        """

    @abstractmethod
    def version(self, key: str) -> StorageVersion:
        """Return the current version of key, or the zero version if absent."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; deleting an absent key is a no-op."""
