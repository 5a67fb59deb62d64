"""S3 object storage for recordings and analysis artifacts."""
import asyncio
import json
import os
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sessionguard.config import settings
from sessionguard.utils.exceptions import StorageError
from sessionguard.utils.logger import logger

CHUNK_SIZE = 1024 * 1024


class StorageService:
    """Reads and writes objects in the single configured recordings bucket."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.recordings_bucket
        if not self.bucket:
            raise ValueError(
                "Recordings bucket must be configured. Set RECORDINGS_S3_BUCKET."
            )
        self._client = client or boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )

    async def get_to_file(self, key: str, local_path: str) -> None:
        """
        Stream an object body to a local file.

        Args:
            key: Object key in the bucket
            local_path: Destination path, overwritten if present
        """
        logger.info(f"[STORAGE] Downloading s3://{self.bucket}/{key} -> {local_path}")
        await asyncio.to_thread(self._download, key, local_path)

    async def put_file(self, key: str, local_path: str, content_type: Optional[str] = None) -> None:
        """
        Stream a local file to an object.

        Args:
            key: Object key in the bucket
            local_path: Local path to the file
            content_type: MIME type; guessed from the extension when omitted
        """
        if not os.path.exists(local_path):
            raise StorageError(f"File not found: {local_path}")
        if content_type is None:
            content_type = self._get_content_type(local_path)
        logger.info(f"[STORAGE] Uploading {local_path} -> s3://{self.bucket}/{key} ({content_type})")
        await asyncio.to_thread(self._upload, key, local_path, content_type)

    async def put_json(self, key: str, value: Any) -> None:
        """Serialize a value as pretty JSON and upload it."""
        body = json.dumps(value, indent=2).encode("utf-8")
        logger.info(f"[STORAGE] Writing JSON s3://{self.bucket}/{key} ({len(body)} bytes)")
        await asyncio.to_thread(self._put_bytes, key, body, "application/json")

    def _download(self, key: str, local_path: str) -> None:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Download failed for {key}: {e}") from e

        body = response.get("Body")
        if body is None:
            raise StorageError(f"No body returned for {key}")

        try:
            with open(local_path, "wb") as f:
                for chunk in body.iter_chunks(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Download failed for {key}: {e}") from e
        finally:
            body.close()

    def _upload(self, key: str, local_path: str, content_type: str) -> None:
        try:
            with open(local_path, "rb") as f:
                self._client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload failed for {key}: {e}") from e

    def _put_bytes(self, key: str, body: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload failed for {key}: {e}") from e

    def _get_content_type(self, file_path: str) -> str:
        """Get content type from file extension."""
        ext = os.path.splitext(file_path)[1].lower()
        content_types = {
            ".mp4": "video/mp4",
            ".webm": "video/webm",
            ".wav": "audio/wav",
            ".txt": "text/plain",
            ".jpg": "image/jpeg",
            ".jpeg": "image/jpeg",
            ".json": "application/json",
        }
        return content_types.get(ext, "application/octet-stream")


# Singleton instance
storage_service = StorageService()
