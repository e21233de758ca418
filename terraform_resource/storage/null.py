"""Storage driver that stores nothing."""

from ..errors import StorageNotFoundError
from ..models import StorageVersion
from .base import StorageDriver


class NullDriver(StorageDriver):
    """Accepts writes and forgets them; every key reads as absent."""

    def upload(self, key: str, content: bytes) -> StorageVersion:
        return StorageVersion()

    def download(self, key: str) -> tuple[bytes, StorageVersion]:
        raise StorageNotFoundError(key)

    def version(self, key: str) -> StorageVersion:
        return StorageVersion()

    def delete(self, key: str) -> None:
        pass
