"""
Blob storage for uploaded images.

WHAT: The BlobStore contract used for mess photos and complaint attachments,
and its S3 implementation.

WHY: The access core never interprets stored bytes. It uploads, gets back an
opaque URL and persists that URL on the record. Uploads always happen before
any database transaction is opened, so a slow or failing upload never holds
row locks; an upload whose record later fails to insert leaves an orphan
object, never a record pointing at nothing.

HOW: S3BlobStore uses boto3 (any S3-compatible endpoint via S3_ENDPOINT).
botocore ClientError is translated to BlobStorageError.
"""

import logging
import uuid
from typing import Any, FrozenSet, Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from hostelcore.core.config import settings
from hostelcore.core.exceptions import BlobStorageError, ValidationError

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES: FrozenSet[str] = frozenset(
    {"image/jpeg", "image/png", "image/webp", "image/heic"}
)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
    "application/pdf": "pdf",
}


class BlobStore(Protocol):
    """Opaque object storage: bytes in, URL out."""

    async def put(self, data: bytes, content_type: str, key_prefix: str = "uploads") -> str:
        ...


def validate_upload(
    data: bytes,
    content_type: str,
    allowed_types: FrozenSet[str] = IMAGE_CONTENT_TYPES,
    max_bytes: Optional[int] = None,
) -> None:
    """
    Reject empty, oversized or unexpected uploads before they reach storage.

    Raises:
        ValidationError: With the offending field in context
    """
    max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES
    if not data:
        raise ValidationError(message="Uploaded file is empty", field="file")
    if len(data) > max_bytes:
        raise ValidationError(
            message=f"File size exceeds maximum allowed ({max_bytes} bytes)",
            field="file",
            file_size=len(data),
        )
    if content_type not in allowed_types:
        raise ValidationError(
            message=f"Unsupported content type: {content_type}",
            field="content_type",
        )


class S3BlobStore:
    """
    BlobStore backed by S3.

    Example:
        store = S3BlobStore()
        url = await store.put(jpeg_bytes, "image/jpeg", key_prefix="mess/12")
    """

    def __init__(self, client: Any = None, bucket_name: Optional[str] = None):
        self.s3_client = client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
        )
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME

    def _generate_key(self, key_prefix: str, content_type: str) -> str:
        extension = _EXTENSIONS.get(content_type, "bin")
        return f"{key_prefix.strip('/')}/{uuid.uuid4().hex}.{extension}"

    def _public_url(self, key: str) -> str:
        if settings.S3_ENDPOINT:
            return f"{settings.S3_ENDPOINT.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"

    async def put(self, data: bytes, content_type: str, key_prefix: str = "uploads") -> str:
        """
        Store bytes and return their URL.

        Raises:
            BlobStorageError: If S3 rejects the upload
        """
        key = self._generate_key(key_prefix, content_type)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error("S3 upload failed for %s: %s", key, e)
            raise BlobStorageError(message="Failed to upload file to storage", error=str(e))

        logger.info("Stored %s bytes at %s", len(data), key)
        return self._public_url(key)
