"""
Object storage for chat attachments.

Uploads go to an S3 bucket (AWS or any S3-compatible service such as MinIO)
and are served from a public URL.

Configuration via environment variables:
- S3_BUCKET_NAME=my-bucket
- S3_REGION=us-east-1
- S3_ACCESS_KEY_ID=xxx (optional, uses IAM roles if empty)
- S3_SECRET_ACCESS_KEY=xxx (optional)
- S3_ENDPOINT_URL=http://localhost:9000 (for MinIO/LocalStack)
- S3_PUBLIC_BASE_URL=https://cdn.example.com (optional)
"""

from typing import Any, Dict, Optional
from pathlib import PurePath
import re
import uuid
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from conversai.core.config import Settings
from conversai.core.exceptions import StorageConfigurationError, StorageUploadError
import logging

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "uploads"


class StorageService:
    """S3-compatible storage for uploaded files"""

    def __init__(self, settings: Settings, client: Any = None):
        self._settings = settings
        self._client = client

    @property
    def is_enabled(self) -> bool:
        return bool(self._settings.S3_BUCKET_NAME)

    @property
    def bucket_name(self) -> Optional[str]:
        return self._settings.S3_BUCKET_NAME

    def _get_client(self):
        """Get or lazily create the boto3 S3 client"""
        if self._client is not None:
            return self._client

        if not self.is_enabled:
            raise StorageConfigurationError(
                "Object storage is not configured. Set S3_BUCKET_NAME=your-bucket"
            )

        client_kwargs: Dict[str, Any] = {
            "service_name": "s3",
            "region_name": self._settings.S3_REGION,
            "config": Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"}
            )
        }

        if self._settings.S3_ACCESS_KEY_ID and self._settings.S3_SECRET_ACCESS_KEY:
            client_kwargs["aws_access_key_id"] = self._settings.S3_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = self._settings.S3_SECRET_ACCESS_KEY
            logger.debug("Using explicit AWS credentials")
        else:
            logger.debug("Using IAM role/instance profile for AWS credentials")

        if self._settings.S3_ENDPOINT_URL:
            client_kwargs["endpoint_url"] = self._settings.S3_ENDPOINT_URL
            logger.info(f"Using custom S3 endpoint: {self._settings.S3_ENDPOINT_URL}")

        self._client = boto3.client(**client_kwargs)
        logger.info(f"S3 client initialized for bucket: {self.bucket_name}")
        return self._client

    @staticmethod
    def _safe_name(filename: Optional[str]) -> str:
        name = PurePath(filename or "file").name
        name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
        return name or "file"

    def public_url(self, key: str) -> str:
        if self._settings.S3_PUBLIC_BASE_URL:
            return f"{self._settings.S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
        if self._settings.S3_ENDPOINT_URL:
            return f"{self._settings.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self._settings.S3_REGION}.amazonaws.com/{key}"

    def upload_bytes(self, data: bytes, filename: Optional[str], content_type: Optional[str]) -> Dict[str, str]:
        """
        Upload one file.

        Returns:
            Dict with the object key as ``id`` and its public ``url``

        Raises:
            StorageConfigurationError: no bucket configured
            StorageUploadError: the upload failed
        """
        client = self._get_client()
        key = f"{UPLOAD_PREFIX}/{uuid.uuid4().hex}/{self._safe_name(filename)}"

        try:
            client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream"
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {filename} to S3: {e}")
            raise StorageUploadError(f"Failed to upload {filename}: {e}") from e

        logger.info(f"Uploaded {filename} ({len(data)} bytes) to s3://{self.bucket_name}/{key}")
        return {"id": key, "url": self.public_url(key)}
