"""
Media storage utilities.

Presigned upload/download URLs, key handling and object management for the
media bucket (event images, ticket images, profile photos, videos, thumbnails).
"""

import math
import os
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import ClientError

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3.client import S3Client

from .db import get_required_env
from .errors import AppError, ErrorCode
from .logging import get_logger
from .validation import sanitize_filename

# Module-level S3 client proxy for testing
s3_client: "S3Client | None" = None

DEFAULT_REGION = "eu-west-1"
UPLOAD_URL_EXPIRY = 3600
LARGE_UPLOAD_URL_EXPIRY = 14400
LARGE_FILE_THRESHOLD = 100 * 1024 * 1024
MULTIPART_PART_SIZE = 100 * 1024 * 1024


def _get_s3_client() -> "S3Client":
    global s3_client
    if s3_client is not None:
        return s3_client
    return boto3.client("s3", region_name=get_region(), endpoint_url=os.getenv("S3_ENDPOINT"))


def get_region() -> str:
    return os.getenv("AWS_REGION") or DEFAULT_REGION


def get_bucket_name() -> str:
    """
    Media bucket name.

    Raises:
        AppError: If the bucket is not configured
    """
    try:
        return get_required_env("S3_BUCKET_NAME")
    except ValueError:
        raise AppError(ErrorCode.CONFIGURATION_ERROR, "S3 bucket not configured")


def timestamped_key(prefix: str, filename: str) -> str:
    """``{prefix}/{epoch millis}-{sanitized filename}``."""
    return f"{prefix}/{int(time.time() * 1000)}-{sanitize_filename(filename)}"


def build_s3_url(key: str, bucket_name: Optional[str] = None) -> str:
    """Canonical (unsigned) object URL stored in the database."""
    bucket_name = bucket_name or get_bucket_name()
    return f"https://{bucket_name}.s3.{get_region()}.amazonaws.com/{key}"


def upload_expiry_for(file_size: Any) -> int:
    """Large uploads get a longer-lived URL."""
    try:
        size = int(file_size)
    except (TypeError, ValueError):
        return UPLOAD_URL_EXPIRY
    return LARGE_UPLOAD_URL_EXPIRY if size > LARGE_FILE_THRESHOLD else UPLOAD_URL_EXPIRY


def generate_upload_url(key: str, content_type: str, expires_in: int = UPLOAD_URL_EXPIRY) -> str:
    """
    Generate pre-signed PUT URL for a browser upload.

    Raises:
        AppError: If URL generation fails
    """
    logger = get_logger(__name__)
    bucket_name = get_bucket_name()

    try:
        url = _get_s3_client().generate_presigned_url(
            "put_object",
            Params={"Bucket": bucket_name, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in,
        )
    except ClientError as e:
        logger.error("Failed to generate upload URL", s3_key=key, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "Failed to generate upload URL")

    logger.info("Generated upload URL", s3_key=key, expires_in=expires_in)
    return url


def upload_url_payload(key: str, content_type: str, expires_in: int = UPLOAD_URL_EXPIRY) -> Dict[str, Any]:
    """Standard response fields for an upload URL request."""
    return {
        "success": True,
        "upload_url": generate_upload_url(key, content_type, expires_in),
        "s3_key": key,
        "s3_url": build_s3_url(key),
        "expires_in": expires_in,
    }


def s3_key_from_url(url: str) -> Optional[str]:
    """
    Extract the object key from a stored URL.

    Accepts ``s3://bucket/key``, ``https://bucket.s3.region.amazonaws.com/key``
    (with or without a query string) and bare keys.
    """
    if not url:
        return None

    url = url.split("?", 1)[0]
    if url.startswith("s3://"):
        _, _, key = url[len("s3://"):].partition("/")
        return unquote(key) or None

    if url.startswith("http://") or url.startswith("https://"):
        parsed = urlparse(url)
        if not parsed.netloc.endswith("amazonaws.com"):
            return None
        return unquote(parsed.path.lstrip("/")) or None

    return url.lstrip("/") or None


def presign_stored_url(url: Optional[str], expires_in: int = UPLOAD_URL_EXPIRY) -> Optional[str]:
    """
    Turn a stored object URL into a time-limited GET URL.

    Returns None when the URL is empty, cannot be mapped to a key or signing
    fails; callers decide whether to fall back to the stored value.
    """
    if not url:
        return None

    key = s3_key_from_url(url)
    if not key:
        return None

    try:
        return _get_s3_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": get_bucket_name(), "Key": key},
            ExpiresIn=expires_in,
        )
    except (ClientError, AppError) as e:
        get_logger(__name__).warning("Failed to presign stored URL", s3_key=key, error=str(e))
        return None


def presign_fields(row: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    """Replace stored URLs in a serialized row with presigned ones, keeping the original on failure."""
    for field in fields:
        if row.get(field):
            row[field] = presign_stored_url(row[field]) or row[field]
    return row


def delete_object(key: str) -> None:
    """Delete an object; a missing object is not an error."""
    logger = get_logger(__name__)
    try:
        _get_s3_client().delete_object(Bucket=get_bucket_name(), Key=key)
        logger.info("Deleted S3 object", s3_key=key)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") != "NoSuchKey":
            logger.warning("Failed to delete S3 object", s3_key=key, error=str(e))


def start_multipart_upload(key: str, content_type: str) -> str:
    """Create a multipart upload and return its UploadId."""
    response = _get_s3_client().create_multipart_upload(
        Bucket=get_bucket_name(), Key=key, ContentType=content_type
    )
    return response["UploadId"]


def part_count(file_size: int, part_size: int = MULTIPART_PART_SIZE) -> int:
    return max(1, math.ceil(file_size / part_size))


def presign_upload_parts(key: str, upload_id: str, total_parts: int) -> List[Dict[str, Any]]:
    """Presigned PUT URL for every part number (1-based)."""
    s3 = _get_s3_client()
    bucket_name = get_bucket_name()
    return [
        {
            "partNumber": part_number,
            "upload_url": s3.generate_presigned_url(
                "upload_part",
                Params={
                    "Bucket": bucket_name,
                    "Key": key,
                    "UploadId": upload_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=UPLOAD_URL_EXPIRY,
            ),
        }
        for part_number in range(1, total_parts + 1)
    ]


def complete_multipart_upload(key: str, upload_id: str, parts: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Complete a multipart upload from the browser-reported part ETags.

    Raises:
        AppError: If S3 rejects the completion
    """
    try:
        response = _get_s3_client().complete_multipart_upload(
            Bucket=get_bucket_name(),
            Key=key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [{"PartNumber": int(p["PartNumber"]), "ETag": p["ETag"]} for p in parts]
            },
        )
    except (ClientError, KeyError, TypeError, ValueError) as e:
        get_logger(__name__).error("Failed to complete multipart upload", s3_key=key, error=str(e))
        raise AppError(ErrorCode.INVALID_INPUT, "Failed to complete multipart upload")
    return dict(response)


def download_file(key: str, path: str) -> None:
    _get_s3_client().download_file(get_bucket_name(), key, path)


def upload_bytes(key: str, data: bytes, content_type: str) -> None:
    _get_s3_client().put_object(Bucket=get_bucket_name(), Key=key, Body=data, ContentType=content_type)
