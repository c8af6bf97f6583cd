"""
Lambda handler that extracts a JPEG thumbnail from an uploaded video.

Invoked directly with ``{"video_id": ..., "s3_key": ...}`` or through
API Gateway as ``POST /videos/thumbnail`` with the same body.
"""

import os
import re
import subprocess
import tempfile
import time
from typing import Any, Dict, Optional

try:  # pragma: no cover
    from utils.db import execute, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import build_s3_url, download_file, upload_bytes
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.db import execute, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import build_s3_url, download_file, upload_bytes


VIDEO_EXTENSION = re.compile(r"\.(mp4|mov|avi|mkv|webm)$", re.IGNORECASE)
FFMPEG_TIMEOUT_SECONDS = 120

router = Router()
logger = get_logger(__name__)


def thumbnail_key_for(s3_key: str) -> str:
    """``videos/123-clip.mp4`` -> ``thumbnails/123-clip.jpg``."""
    filename = s3_key.rsplit("/", 1)[-1] or "thumbnail.jpg"
    return f"thumbnails/{VIDEO_EXTENSION.sub('.jpg', filename)}"


def extract_frame(video_path: str, thumbnail_path: str) -> None:
    """
    Grab one frame just after the start, scaled to 320px wide.

    Raises:
        AppError: If ffmpeg fails or produces no file
    """
    command = [
        os.getenv("FFMPEG_PATH", "ffmpeg"),
        "-i",
        video_path,
        "-ss",
        "0.1",
        "-vframes",
        "1",
        "-vf",
        "scale=320:-1",
        thumbnail_path,
        "-y",
    ]
    try:
        subprocess.run(command, check=True, capture_output=True, timeout=FFMPEG_TIMEOUT_SECONDS)
    except (OSError, subprocess.SubprocessError) as e:
        logger.error("ffmpeg failed", video_path=video_path, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, f"Failed to generate thumbnail: {e}")

    if not os.path.exists(thumbnail_path):
        raise AppError(ErrorCode.INTERNAL_ERROR, "Failed to generate thumbnail: thumbnail file was not created")


def store_thumbnail_url(video_id: Optional[Any], s3_key: str, thumbnail_url: str) -> bool:
    """Point the video row at its thumbnail, by id first and then by object key."""
    with get_connection() as connection:
        if video_id:
            result = execute(
                connection,
                "UPDATE videos SET thumbnail_url = %s, updated_at = NOW() WHERE id = %s",
                (thumbnail_url, video_id),
            )
            if result.rowcount > 0:
                return True

        result = execute(
            connection,
            "UPDATE videos SET thumbnail_url = %s, updated_at = NOW() WHERE video_url LIKE %s",
            (thumbnail_url, f"%{s3_key}%"),
        )

    if result.rowcount == 0:
        logger.warning("No video found to update with thumbnail URL", video_id=video_id, s3_key=s3_key)
        return False
    return True


def generate_thumbnail(video_id: Any, s3_key: str) -> Dict[str, Any]:
    """Download, extract, upload and record. Temp files are always removed."""
    stamp = int(time.time() * 1000)
    tmp_dir = tempfile.gettempdir()
    video_path = os.path.join(tmp_dir, f"video_{video_id}_{stamp}.mp4")
    thumbnail_path = os.path.join(tmp_dir, f"thumbnail_{video_id}_{stamp}.jpg")

    try:
        download_file(s3_key, video_path)
        extract_frame(video_path, thumbnail_path)

        thumbnail_key = thumbnail_key_for(s3_key)
        with open(thumbnail_path, "rb") as f:
            upload_bytes(thumbnail_key, f.read(), "image/jpeg")

        thumbnail_url = build_s3_url(thumbnail_key)
        updated = store_thumbnail_url(video_id, s3_key, thumbnail_url)
        logger.info("Generated thumbnail", video_id=video_id, thumbnail_key=thumbnail_key, updated=updated)
        return {"success": True, "thumbnail_url": thumbnail_url, "thumbnail_key": thumbnail_key}
    finally:
        for path in (video_path, thumbnail_path):
            if os.path.exists(path):
                os.remove(path)


def _thumbnail_request(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not payload.get("video_id") or not payload.get("s3_key"):
        raise AppError(ErrorCode.INVALID_INPUT, "video_id and s3_key are required")
    return json_response(200, generate_thumbnail(payload["video_id"], str(payload["s3_key"])))


@router.route("POST", r"/videos/thumbnail")
def create_thumbnail(event: Dict[str, Any]) -> Dict[str, Any]:
    return _thumbnail_request(parse_body(event))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Direct invocation or API Gateway proxy event."""
    request_logger = get_logger(__name__, get_correlation_id(event))
    if event.get("httpMethod"):
        return router.dispatch(event, request_logger)

    try:
        return _thumbnail_request(event)
    except AppError as e:
        request_logger.warning("Thumbnail request rejected", error=e.message)
        return json_response(e.status_code, {"success": False, "error": e.message})
    except Exception as e:
        request_logger.error("Thumbnail generation failed", error=str(e))
        return json_response(500, {"success": False, "error": str(e)})
