"""
Lambda handler for public user profiles addressed by nickname.
"""

from typing import Any, Dict
from urllib.parse import unquote

try:  # pragma: no cover
    from utils.auth import require_user
    from utils.db import execute, fetch_all, fetch_one, get_connection
    from utils.errors import AppError, ErrorCode
    from utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from utils.logging import get_correlation_id, get_logger
    from utils.storage import presign_fields
    from utils.validation import RESERVED_NICKNAMES, is_valid_nickname, normalize_nickname
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import require_user
    from ..utils.db import execute, fetch_all, fetch_one, get_connection
    from ..utils.errors import AppError, ErrorCode
    from ..utils.http import Router, json_response, parse_body, serialize_row, serialize_rows
    from ..utils.logging import get_correlation_id, get_logger
    from ..utils.storage import presign_fields
    from ..utils.validation import RESERVED_NICKNAMES, is_valid_nickname, normalize_nickname


PUBLIC_VIDEO_LIMIT = 50
NICKNAME = r"(?P<nickname>[^/]+)"

router = Router()
logger = get_logger(__name__)


@router.route("GET", r"/users/check-nickname/" + NICKNAME)
def check_nickname(event: Dict[str, Any], nickname: str) -> Dict[str, Any]:
    nickname = normalize_nickname(unquote(nickname))
    if not is_valid_nickname(nickname):
        return json_response(200, {"success": True, "available": False, "reason": "Invalid format"})
    if nickname in RESERVED_NICKNAMES:
        return json_response(200, {"success": True, "available": False, "reason": "Reserved"})

    with get_connection() as connection:
        existing = fetch_one(connection, "SELECT nickname FROM users WHERE nickname = %s", (nickname,))
    return json_response(200, {"success": True, "available": existing is None})


@router.route("GET", r"/users/" + NICKNAME + r"/videos")
def list_public_videos(event: Dict[str, Any], nickname: str) -> Dict[str, Any]:
    nickname = normalize_nickname(unquote(nickname))

    with get_connection() as connection:
        user = fetch_one(connection, "SELECT cognito_sub FROM users WHERE nickname = %s", (nickname,))
        if user is None:
            raise AppError(ErrorCode.NOT_FOUND, "User not found")
        videos = fetch_all(
            connection,
            f"""
            SELECT v.id, v.title, v.video_url, v.thumbnail_url, v.category,
                   v.event_id, e.name AS event_name, v.created_at
            FROM videos v
            LEFT JOIN events e ON v.event_id = e.id
            WHERE v.cognito_sub = %s
            ORDER BY v.created_at DESC
            LIMIT {PUBLIC_VIDEO_LIMIT}
            """,
            (user["cognito_sub"],),
        )

    payload = [presign_fields(row, "video_url", "thumbnail_url") for row in serialize_rows(videos)]
    return json_response(200, {"success": True, "videos": payload})


@router.route("GET", r"/users/" + NICKNAME)
def get_public_profile(event: Dict[str, Any], nickname: str) -> Dict[str, Any]:
    nickname = normalize_nickname(unquote(nickname))

    with get_connection() as connection:
        user = fetch_one(
            connection,
            """
            SELECT nickname, name, photo_url, cover_photo_url, bio, location,
                   dance_styles, followers_count, following_count
            FROM users WHERE nickname = %s
            """,
            (nickname,),
        )
    if user is None:
        raise AppError(ErrorCode.NOT_FOUND, "User not found")

    profile = presign_fields(serialize_row(user) or {}, "photo_url", "cover_photo_url")
    if profile.get("dance_styles") is None:
        profile["dance_styles"] = []
    # Social graph is not modelled yet
    profile["groups"] = []
    profile["schools"] = []
    return json_response(200, {"success": True, "profile": profile})


@router.route("PATCH", r"/user/nickname")
def set_nickname(event: Dict[str, Any]) -> Dict[str, Any]:
    cognito_sub = require_user(event)
    body = parse_body(event)
    if not body.get("nickname"):
        raise AppError(ErrorCode.INVALID_INPUT, "Nickname is required")

    nickname = normalize_nickname(str(body["nickname"]))
    if not is_valid_nickname(nickname):
        raise AppError(ErrorCode.INVALID_INPUT, "Invalid nickname format")
    if nickname in RESERVED_NICKNAMES:
        raise AppError(ErrorCode.INVALID_INPUT, "Nickname is reserved")

    with get_connection() as connection:
        taken = fetch_one(
            connection,
            "SELECT cognito_sub FROM users WHERE nickname = %s AND cognito_sub != %s",
            (nickname, cognito_sub),
        )
        if taken:
            raise AppError(ErrorCode.CONFLICT, "Nickname is already taken")
        execute(
            connection,
            "UPDATE users SET nickname = %s, updated_at = NOW() WHERE cognito_sub = %s",
            (nickname, cognito_sub),
        )

    logger.info("Nickname set", cognito_sub=cognito_sub, nickname=nickname)
    return json_response(200, {"success": True, "nickname": nickname})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway entry point for /users and /user/nickname routes."""
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
