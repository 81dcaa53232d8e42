"""S3-compatible object storage for chat images and avatars.

Objects are written under ``{prefix}{user_id}/{millis}_{filename}`` with
spaces in the filename replaced by underscores.  boto3 is synchronous,
so calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from stride.core.errors import UploadError, ValidationError

if TYPE_CHECKING:
    from stride.config.schema import StorageConfig

logger = logging.getLogger(__name__)

AVATAR_PREFIX = "avatars/"


def create_client(config: StorageConfig) -> Any:
    """Build a boto3 S3 client from config."""
    session = boto3.session.Session(
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name=config.region,
    )
    client_config = Config(signature_version="s3v4", s3={"addressing_style": "path"})
    return session.client("s3", endpoint_url=config.endpoint_url, config=client_config)


def safe_filename(filename: str) -> str:
    name = PurePosixPath(filename.replace("\\", "/")).name
    name = name.replace(" ", "_")
    if not name or name in {".", ".."}:
        name = "upload"
    return name


class ObjectStorage:
    """Upload and address objects in one bucket."""

    def __init__(
        self,
        client: Any,
        bucket: str,
        *,
        public_base_url: str = "",
        max_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.max_bytes = max_bytes

    @classmethod
    def from_config(cls, config: StorageConfig) -> ObjectStorage:
        return cls(
            create_client(config),
            config.bucket,
            public_base_url=config.public_base_url,
            max_bytes=config.max_image_bytes,
        )

    def object_key(
        self,
        user_id: str,
        filename: str,
        *,
        prefix: str = "",
        millis: int | None = None,
    ) -> str:
        if millis is None:
            millis = int(time.time() * 1000)
        return f"{prefix}{user_id}/{millis}_{safe_filename(filename)}"

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        endpoint = str(self._client.meta.endpoint_url).rstrip("/")
        return f"{endpoint}/{self.bucket}/{key}"

    def _validate_image(self, data: bytes, content_type: str) -> None:
        if not content_type.startswith("image/"):
            raise ValidationError("file", "Only image files can be uploaded")
        if not data:
            raise ValidationError("file", "The file is empty")
        if len(data) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise ValidationError("file", f"Images must be smaller than {limit_mb:g}MB")

    async def _put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.exception("Upload of %s to %s failed", key, self.bucket)
            msg = "Failed to upload file. Please try again."
            raise UploadError(msg) from e

    async def upload_image(
        self, user_id: str, filename: str, data: bytes, content_type: str
    ) -> tuple[str, str]:
        """Validate and store a chat image. Returns ``(key, public_url)``."""
        self._validate_image(data, content_type)
        key = self.object_key(user_id, filename)
        await self._put(key, data, content_type)
        return key, self.public_url(key)

    async def upload_avatar(
        self, user_id: str, filename: str, data: bytes, content_type: str
    ) -> tuple[str, str]:
        self._validate_image(data, content_type)
        key = self.object_key(user_id, filename, prefix=AVATAR_PREFIX)
        await self._put(key, data, content_type)
        return key, self.public_url(key)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=key
            )
        except (ClientError, BotoCoreError) as e:
            msg = f"Failed to delete {key}"
            raise UploadError(msg) from e
