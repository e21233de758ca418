"""
S3 storage driver.

Wraps boto3 ClientError/BotoCoreError into the resource's storage error types.
The version token is the S3 VersionId on versioned buckets and the object's
LastModified timestamp otherwise.
"""

import logging
import posixpath
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StorageNotFoundError, StorageReadError, StorageWriteError
from ..models import StorageModel, StorageVersion
from .base import StorageDriver

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


def _version_from_response(response: dict[str, Any]) -> StorageVersion:
    last_modified = response.get("LastModified")
    version_id = response.get("VersionId")
    if version_id and version_id != "null":
        token = version_id
    elif last_modified is not None:
        token = last_modified.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    else:
        token = response.get("ETag", "").strip('"')
    return StorageVersion(version=token, last_modified=last_modified)


class S3Driver(StorageDriver):
    """StorageDriver backed by an S3 (or S3-compatible) bucket."""

    def __init__(
        self,
        bucket: str,
        bucket_path: str = "",
        client: Any = None,
        server_side_encryption: str = "",
        sse_kms_key_id: str = "",
    ):
        """
        Initialize the S3 driver.

        Args:
            bucket: Bucket holding the state files
            bucket_path: Optional key prefix inside the bucket
            client: boto3 S3 client; injected in tests
            server_side_encryption: Optional SSE algorithm (e.g. "aws:kms")
            sse_kms_key_id: Optional KMS key for SSE
        """
        self.bucket = bucket
        self.bucket_path = bucket_path
        self.client = client
        self.server_side_encryption = server_side_encryption
        self.sse_kms_key_id = sse_kms_key_id

    @classmethod
    def from_model(cls, model: StorageModel) -> "S3Driver":
        """Build a driver and its boto3 client from storage configuration."""
        session = boto3.Session(
            aws_access_key_id=model.access_key_id or None,
            aws_secret_access_key=model.secret_access_key or None,
            aws_session_token=model.session_token or None,
            region_name=model.region_name or None,
        )
        client = session.client(
            "s3",
            endpoint_url=model.endpoint or None,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
        return cls(
            bucket=model.bucket,
            bucket_path=model.bucket_path,
            client=client,
            server_side_encryption=model.server_side_encryption,
            sse_kms_key_id=model.sse_kms_key_id,
        )

    def _key(self, key: str) -> str:
        return posixpath.join(self.bucket_path, key) if self.bucket_path else key

    def upload(self, key: str, content: bytes) -> StorageVersion:
        full_key = self._key(key)
        put_args: dict[str, Any] = {"Bucket": self.bucket, "Key": full_key, "Body": content}
        if self.server_side_encryption:
            put_args["ServerSideEncryption"] = self.server_side_encryption
        if self.sse_kms_key_id:
            put_args["SSEKMSKeyId"] = self.sse_kms_key_id

        try:
            response = self.client.put_object(**put_args)
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError(
                f"Failed to upload '{full_key}' to bucket '{self.bucket}': {e}"
            ) from e

        version_id = response.get("VersionId")
        if version_id and version_id != "null":
            version = StorageVersion(version=version_id)
        else:
            # Unversioned bucket, the token is LastModified which put_object does not return
            version = self.version(key)
            if version.is_zero():
                raise StorageReadError(
                    f"Uploaded '{full_key}' to bucket '{self.bucket}' but it could not be read back"
                )

        logger.debug(f"Uploaded s3://{self.bucket}/{full_key} at version {version.version}")
        return version

    def download(self, key: str) -> tuple[bytes, StorageVersion]:
        full_key = self._key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=full_key)
            content = response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                raise StorageNotFoundError(full_key) from e
            raise StorageReadError(
                f"Failed to download '{full_key}' from bucket '{self.bucket}': {e}"
            ) from e
        except BotoCoreError as e:
            raise StorageReadError(
                f"Failed to download '{full_key}' from bucket '{self.bucket}': {e}"
            ) from e

        return content, _version_from_response(response)

    def version(self, key: str) -> StorageVersion:
        full_key = self._key(key)
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=full_key)
        except ClientError as e:
            if _is_not_found(e):
                return StorageVersion()
            raise StorageReadError(
                f"Failed to check '{full_key}' in bucket '{self.bucket}': {e}"
            ) from e
        except BotoCoreError as e:
            raise StorageReadError(
                f"Failed to check '{full_key}' in bucket '{self.bucket}': {e}"
            ) from e

        return _version_from_response(response)

    def delete(self, key: str) -> None:
        full_key = self._key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=full_key)
        except ClientError as e:
            if _is_not_found(e):
                return
            raise StorageWriteError(
                f"Failed to delete '{full_key}' from bucket '{self.bucket}': {e}"
            ) from e
        except BotoCoreError as e:
            raise StorageWriteError(
                f"Failed to delete '{full_key}' from bucket '{self.bucket}': {e}"
            ) from e
        logger.debug(f"Deleted s3://{self.bucket}/{full_key}")
