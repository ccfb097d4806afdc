"""
S3/MinIO storage client for generated media.

This module provides a wrapper around boto3 for the pipeline's uploads:
- Single object uploads from bytes
- Multi-source uploads from URLs or local files, tolerant of per-item failure
- Public URL construction for uploaded objects
"""

import hashlib
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import ExternalServiceError, ValidationError
from quillpress.schemas.content import UploadSummary

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".bin"


@dataclass
class UploadResult:
    """
    Result container for upload operations.

    Attributes:
        bucket: S3 bucket name
        key: S3 object key
        uri: Full S3 URI (s3://bucket/key)
        url: Public URL of the object
        etag: S3 ETag for the uploaded object
        content_type: MIME type of the uploaded content
        file_size_bytes: Size of the uploaded file
        checksum_md5: MD5 hash of the uploaded content
    """

    bucket: str
    key: str
    uri: str
    url: str
    etag: str
    content_type: str
    file_size_bytes: int
    checksum_md5: str

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for logging."""
        return {
            "bucket": self.bucket,
            "key": self.key,
            "uri": self.uri,
            "url": self.url,
            "etag": self.etag,
            "content_type": self.content_type,
            "file_size_bytes": self.file_size_bytes,
            "checksum_md5": self.checksum_md5,
        }


def is_remote_source(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def guess_extension(source: str, content_type: str | None = None) -> str:
    """
    Guess a file extension for a source.

    Prefers the extension in the URL path or file name, then the content
    type, then ``.bin``.
    """
    path = urlparse(source).path if is_remote_source(source) else source
    suffix = Path(path).suffix.lower()
    if suffix and len(suffix) <= 6:
        return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed:
            return guessed
    return DEFAULT_EXTENSION


class StorageClient:
    """
    S3/MinIO storage client for media asset management.

    Example:
        ```python
        storage = StorageClient()

        summary = storage.upload_sources(
            ["https://images.example.com/a.png", "/tmp/b.jpg"],
            destination_path=f"records/{record_id}",
        )
        summary.uploaded_urls  # public URLs in source order
        summary.errors         # {source: error message}
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        s3_client: Any = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """
        Initialize the storage client.

        Args:
            settings: Application settings instance
            endpoint_url: S3/MinIO endpoint URL (overrides settings)
            access_key: S3 access key (overrides settings)
            secret_key: S3 secret key (overrides settings)
            region: AWS region (overrides settings)
            s3_client: Pre-built boto3 client (tests)
            http_client: httpx client used to download remote sources
        """
        self._settings = settings or get_settings()

        self._endpoint_url = endpoint_url or self._settings.s3_endpoint_url
        self._region = region or self._settings.s3_region
        timeout = self._settings.storage_timeout_seconds

        self._client = s3_client or boto3.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=access_key or self._settings.s3_access_key,
            aws_secret_access_key=secret_key or self._settings.s3_secret_key,
            region_name=self._region,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=min(timeout, 10.0),
                read_timeout=timeout,
            ),
        )
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

        logger.debug(
            "Storage client initialized",
            extra={"endpoint_url": self._endpoint_url, "region": self._region},
        )

    @property
    def default_assets_bucket(self) -> str:
        """Get the default bucket for assets."""
        return self._settings.s3_bucket_assets

    def close(self) -> None:
        self._http.close()

    def public_url(self, key: str, bucket: str | None = None) -> str:
        """
        Public URL of an object.

        Uses ``s3_public_base_url`` when configured, otherwise the endpoint
        (path style) or the virtual-hosted AWS URL.
        """
        bucket = bucket or self.default_assets_bucket
        base = self._settings.s3_public_base_url
        if base:
            return f"{base.rstrip('/')}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{bucket}/{key}"
        return f"https://{bucket}.s3.{self._region}.amazonaws.com/{key}"

    def _guess_content_type(self, key: str) -> str:
        content_type, _ = mimetypes.guess_type(key)
        return content_type or "application/octet-stream"

    def upload_file(
        self,
        data: bytes,
        key: str,
        bucket: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """
        Upload bytes to S3/MinIO.

        Args:
            data: File content
            key: S3 object key (path within bucket)
            bucket: S3 bucket name (defaults to the assets bucket)
            content_type: MIME type (auto-detected if not provided)
            metadata: Additional S3 metadata

        Returns:
            UploadResult with upload details

        Raises:
            ExternalServiceError: If upload fails
        """
        bucket = bucket or self.default_assets_bucket
        if content_type is None:
            content_type = self._guess_content_type(key)

        extra_args: dict[str, Any] = {"ContentType": content_type}
        if metadata:
            extra_args["Metadata"] = metadata

        try:
            logger.info(
                "Uploading file to S3",
                extra={
                    "bucket": bucket,
                    "key": key,
                    "content_type": content_type,
                    "size_bytes": len(data),
                },
            )
            response = self._client.put_object(Bucket=bucket, Key=key, Body=data, **extra_args)
        except ClientError as e:
            error_msg = e.response.get("Error", {}).get("Message", str(e))
            logger.error(
                "S3 upload failed",
                extra={
                    "bucket": bucket,
                    "key": key,
                    "error_code": e.response.get("Error", {}).get("Code", "Unknown"),
                    "error": error_msg,
                },
            )
            raise ExternalServiceError(
                service="S3/MinIO",
                message=f"Failed to upload file to S3: {error_msg}",
                original_error=str(e),
            ) from e
        except BotoCoreError as e:
            logger.error("S3 upload failed", extra={"bucket": bucket, "key": key, "error": str(e)})
            raise ExternalServiceError(
                service="S3/MinIO",
                message="Failed to upload file to S3",
                original_error=str(e),
            ) from e

        return UploadResult(
            bucket=bucket,
            key=key,
            uri=f"s3://{bucket}/{key}",
            url=self.public_url(key, bucket),
            etag=response.get("ETag", "").strip('"'),
            content_type=content_type,
            file_size_bytes=len(data),
            checksum_md5=hashlib.md5(data).hexdigest(),
        )

    def upload_bytes(
        self,
        data: bytes,
        destination_path: str,
        extension: str,
        content_type: str | None = None,
    ) -> str:
        """Upload bytes under ``destination_path`` with a random name; return the URL."""
        key = f"{destination_path.strip('/')}/{uuid4()}.{extension.lstrip('.')}"
        return self.upload_file(data, key, content_type=content_type).url

    def _read_source(self, source: str) -> tuple[bytes, str | None]:
        """Fetch a URL or read a local file; return content and content type."""
        if is_remote_source(source):
            try:
                response = self._http.get(source)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise ExternalServiceError(
                    service="media download",
                    message=f"Download failed with HTTP {e.response.status_code}",
                    original_error=source,
                    retryable=e.response.status_code >= 500,
                ) from e
            except httpx.HTTPError as e:
                raise ExternalServiceError(
                    service="media download",
                    message=f"Download failed: {e}",
                    original_error=source,
                ) from e
            return response.content, response.headers.get("Content-Type")

        if not os.path.isfile(source):
            raise ValidationError(f"Source file does not exist: {source}", field="source")
        return Path(source).read_bytes(), None

    def upload_sources(self, sources: list[str], destination_path: str) -> UploadSummary:
        """
        Upload each source (URL or local path) under ``destination_path``.

        Failures are collected per source and never raised, so callers decide
        which failures matter.

        Returns:
            UploadSummary with successful uploads (source order) and errors
        """
        summary = UploadSummary()
        for source in sources:
            try:
                data, content_type = self._read_source(source)
                extension = guess_extension(source, content_type)
                key = f"{destination_path.strip('/')}/{uuid4()}{extension}"
                result = self.upload_file(
                    data,
                    key,
                    content_type=content_type or self._guess_content_type(key),
                )
                summary.uploaded[source] = result.url
            except (ExternalServiceError, ValidationError, OSError) as e:
                logger.warning(
                    "Failed to upload source",
                    extra={"source": source, "destination": destination_path, "error": str(e)},
                )
                summary.errors[source] = str(e)

        logger.info(
            "Uploaded media sources",
            extra={
                "destination": destination_path,
                "uploaded": len(summary.uploaded),
                "failed": len(summary.errors),
            },
        )
        return summary
