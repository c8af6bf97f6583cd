"""
Lambda handler for event videos and albums.

Uploads go straight from the browser to S3: this handler hands out presigned
(single or multipart) upload URLs and keeps the ``videos`` rows in step.
"""

from typing import Any, Dict, List, Optional, Tuple

try:  # pragma: no cover
    from utils.auth import get_cognito_sub, require_user
    from utils.db import execute, fetch_all, fetch_one, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import (
        MULTIPART_PART_SIZE,
        UPLOAD_URL_EXPIRY,
        build_s3_url,
        complete_multipart_upload,
        delete_object,
        generate_upload_url,
        part_count,
        presign_fields,
        presign_upload_parts,
        s3_key_from_url,
        start_multipart_upload,
        timestamped_key,
        upload_expiry_for,
    )
    from utils.validation import is_iso_date, parse_positive_int, require_fields, strip_extension
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import get_cognito_sub, require_user
    from ..utils.db import execute, fetch_all, fetch_one, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import (
        MULTIPART_PART_SIZE,
        UPLOAD_URL_EXPIRY,
        build_s3_url,
        complete_multipart_upload,
        delete_object,
        generate_upload_url,
        part_count,
        presign_fields,
        presign_upload_parts,
        s3_key_from_url,
        start_multipart_upload,
        timestamped_key,
        upload_expiry_for,
    )
    from ..utils.validation import is_iso_date, parse_positive_int, require_fields, strip_extension


DEFAULT_VIDEO_TYPE = "video/mp4"

router = Router()
logger = get_logger(__name__)


def _require_album_owner(connection: Any, album_id: int, event_id: int, cognito_sub: str) -> None:
    album = fetch_one(
        connection,
        "SELECT id, cognito_sub FROM albums WHERE id = %s AND event_id = %s",
        (album_id, event_id),
    )
    if album is None:
        raise AppError(ErrorCode.NOT_FOUND, f"Album {album_id} not found for event {event_id}")
    if album["cognito_sub"] != cognito_sub:
        raise AppError(ErrorCode.FORBIDDEN, "No permission to upload to this album")


def _insert_video(connection: Any, cognito_sub: str, event_id: int, album_id: int, title: str, url: str) -> int:
    result = execute(
        connection,
        """
        INSERT INTO videos (cognito_sub, event_id, album_id, title, video_url, created_at)
        VALUES (%s, %s, %s, %s, %s, NOW())
        """,
        (cognito_sub, event_id, album_id, title, url),
    )
    return int(result.lastrowid)


def _upload_target(body: Dict[str, Any]) -> Tuple[int, int, str]:
    require_fields(body, "filename")
    if not body.get("event_id") or not body.get("album_id"):
        raise AppError(ErrorCode.INVALID_INPUT, "event_id and album_id are required")
    event_id = parse_positive_int(body["event_id"], "event_id")
    album_id = parse_positive_int(body["album_id"], "album_id")
    key = timestamped_key("videos", str(body["filename"]))
    return event_id, album_id, key


@router.route("POST", r"/videos/upload-url")
def create_upload_url(event: Dict[str, Any]) -> Dict[str, Any]:
    body = parse_body(event)
    event_id, album_id, key = _upload_target(body)
    expires_in = upload_expiry_for(body.get("file_size"))
    upload_url = generate_upload_url(key, body.get("mime_type") or DEFAULT_VIDEO_TYPE, expires_in)
    s3_url = build_s3_url(key)

    video_id: Optional[str] = None
    cognito_sub = get_cognito_sub(event)
    if cognito_sub:
        with get_connection() as connection:
            _require_album_owner(connection, album_id, event_id, cognito_sub)
            video_id = str(
                _insert_video(connection, cognito_sub, event_id, album_id, strip_extension(body["filename"]), s3_url)
            )
        logger.info("Registered video upload", video_id=video_id, s3_key=key)

    return json_response(
        200,
        {
            "success": True,
            "video_id": video_id,
            "upload_url": upload_url,
            "s3_key": key,
            "s3_url": s3_url,
            "expires_in": expires_in,
        },
    )


@router.route("POST", r"/videos/confirm")
def confirm_upload(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Confirm a finished browser upload.

    Returns the existing row (by id, then by object key). When neither exists
    an authenticated album owner gets a new row.
    """
    body = parse_body(event)
    require_fields(body, "s3_key")
    s3_key = str(body["s3_key"])
    s3_url = build_s3_url(s3_key)

    with get_connection() as connection:
        video = None
        if body.get("video_id"):
            video = fetch_one(connection, "SELECT * FROM videos WHERE id = %s", (body["video_id"],))
        if video is None:
            video = fetch_one(connection, "SELECT * FROM videos WHERE video_url LIKE %s", (f"%{s3_key}%",))

        if video is None:
            cognito_sub = require_user(event)
            if not body.get("album_id") or not body.get("event_id"):
                raise AppError(ErrorCode.INVALID_INPUT, "album_id and event_id required to create video record")
            event_id = parse_positive_int(body["event_id"], "event_id")
            album_id = parse_positive_int(body["album_id"], "album_id")
            _require_album_owner(connection, album_id, event_id, cognito_sub)
            title = strip_extension(s3_key.rsplit("/", 1)[-1]) or "Untitled"
            video_id = _insert_video(connection, cognito_sub, event_id, album_id, title, s3_url)
            video = fetch_one(connection, "SELECT * FROM videos WHERE id = %s", (video_id,))
            logger.info("Created video on confirm", video_id=video_id, s3_key=s3_key)

    return json_response(200, {"success": True, "video": serialize_row(video)})


@router.route("DELETE", r"/videos")
def delete_videos(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    raw_ids = body.get("video_ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise AppError(ErrorCode.INVALID_INPUT, "video_ids array is required")

    video_ids: List[int] = []
    for raw_id in raw_ids:
        try:
            video_ids.append(int(raw_id))
        except (TypeError, ValueError):
            continue
    if not video_ids:
        raise AppError(ErrorCode.INVALID_INPUT, "video_ids array is required")

    placeholders = ", ".join(["%s"] * len(video_ids))
    deleted_ids: List[str] = []
    with get_connection() as connection:
        videos = fetch_all(
            connection,
            f"SELECT id, video_url, thumbnail_url, cognito_sub FROM videos WHERE id IN ({placeholders})",
            video_ids,
        )
        own_videos = [video for video in videos if video["cognito_sub"] == cognito_sub]
        if not own_videos:
            raise AppError(ErrorCode.FORBIDDEN, "No permission to delete these videos")

        for video in own_videos:
            execute(connection, "DELETE FROM videos WHERE id = %s", (video["id"],))
            deleted_ids.append(str(video["id"]))
            for url in (video.get("video_url"), video.get("thumbnail_url")):
                key = s3_key_from_url(url or "")
                if key:
                    delete_object(key)

    logger.info("Deleted videos", count=len(deleted_ids), owner=cognito_sub)
    return json_response(200, {"success": True, "deleted_count": len(deleted_ids), "deleted_ids": deleted_ids})


@router.route("POST", r"/videos/multipart/init")
def init_multipart_upload(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    if not all(body.get(field) for field in ("filename", "file_size", "event_id", "album_id")):
        raise AppError(ErrorCode.INVALID_INPUT, "filename, event_id, album_id, and file_size are required")
    event_id, album_id, key = _upload_target(body)
    file_size = parse_positive_int(body["file_size"], "file_size")
    s3_url = build_s3_url(key)

    with get_connection() as connection:
        _require_album_owner(connection, album_id, event_id, cognito_sub)
        upload_id = start_multipart_upload(key, body.get("mime_type") or DEFAULT_VIDEO_TYPE)
        total_parts = part_count(file_size)
        parts = presign_upload_parts(key, upload_id, total_parts)
        video_id = _insert_video(connection, cognito_sub, event_id, album_id, strip_extension(body["filename"]), s3_url)

    logger.info("Started multipart upload", video_id=video_id, s3_key=key, total_parts=total_parts)
    return json_response(
        200,
        {
            "success": True,
            "video_id": str(video_id),
            "upload_id": upload_id,
            "s3_key": key,
            "s3_url": s3_url,
            "total_parts": total_parts,
            "part_size": MULTIPART_PART_SIZE,
            "expires_in": UPLOAD_URL_EXPIRY,
            "parts": parts,
        },
    )


@router.route("POST", r"/videos/multipart/complete")
def finish_multipart_upload(event: Dict[str, Any]) -> Dict[str, Any]:
    body = parse_body(event)
    parts = body.get("parts")
    if not body.get("upload_id") or not body.get("s3_key") or not isinstance(parts, list):
        raise AppError(ErrorCode.INVALID_INPUT, "upload_id, s3_key, and parts array are required")

    result = complete_multipart_upload(body["s3_key"], body["upload_id"], parts)
    logger.info("Completed multipart upload", s3_key=body["s3_key"], parts=len(parts))
    return json_response(
        200,
        {"success": True, "s3_key": body["s3_key"], "s3_url": result.get("Location"), "etag": result.get("ETag")},
    )


@router.route("PATCH", r"/videos/(?P<video_id>\d+)")
def move_video(event: Dict[str, Any], video_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)

    with get_connection() as connection:
        video = fetch_one(connection, "SELECT * FROM videos WHERE id = %s", (video_id,))
        if video is None:
            raise AppError(ErrorCode.NOT_FOUND, "Video not found")
        if video["cognito_sub"] != cognito_sub:
            raise AppError(ErrorCode.FORBIDDEN, "No permission")

        if "album_id" in body:
            album_id = parse_positive_int(body["album_id"], "album_id") if body["album_id"] else None
            execute(connection, "UPDATE videos SET album_id = %s, updated_at = NOW() WHERE id = %s", (album_id, video_id))
            video = fetch_one(connection, "SELECT * FROM videos WHERE id = %s", (video_id,))

    return json_response(200, {"success": True, "video": serialize_row(video)})


@router.route("GET", r"/events/(?P<event_id>\d+)/videos")
def list_event_videos(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        videos = fetch_all(
            connection,
            """
            SELECT v.*, a.name AS album_name
            FROM videos v
            LEFT JOIN albums a ON v.album_id = a.id
            WHERE v.event_id = %s
            ORDER BY v.created_at DESC
            """,
            (event_id,),
        )
    payload = [presign_fields(row, "video_url", "thumbnail_url") for row in serialize_rows(videos)]
    return json_response(200, {"success": True, "count": len(payload), "videos": payload})


@router.route("GET", r"/events/(?P<event_id>\d+)/albums")
def list_albums(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    with get_connection() as connection:
        albums = fetch_all(
            connection,
            "SELECT * FROM albums WHERE event_id = %s ORDER BY album_date DESC, name ASC",
            (event_id,),
        )
    return json_response(200, {"success": True, "albums": serialize_rows(albums)})


@router.route("POST", r"/events/(?P<event_id>\d+)/albums")
def create_album(event: Dict[str, Any], event_id: str) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    name = body.get("name")
    if not isinstance(name, str) or not name.strip():
        raise AppError(ErrorCode.INVALID_INPUT, "Album name is required")

    name = name.strip()
    album_date = body.get("album_date")
    if not (isinstance(album_date, str) and is_iso_date(album_date)):
        album_date = None

    with get_connection() as connection:
        existing = fetch_one(
            connection,
            """
            SELECT * FROM albums
            WHERE event_id = %s AND name = %s AND (album_date = %s OR (album_date IS NULL AND %s IS NULL))
            """,
            (event_id, name, album_date, album_date),
        )
        if existing:
            return json_response(
                200, {"success": True, "album": serialize_row(existing), "message": "Album already exists"}
            )

        result = execute(
            connection,
            "INSERT INTO albums (event_id, name, album_date, cognito_sub, created_at) VALUES (%s, %s, %s, %s, NOW())",
            (event_id, name, album_date, cognito_sub),
        )
        album = fetch_one(connection, "SELECT * FROM albums WHERE id = %s", (result.lastrowid,))

    logger.info("Created album", event_id=event_id, album_id=result.lastrowid)
    return json_response(201, {"success": True, "album": serialize_row(album)})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /videos and album routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
